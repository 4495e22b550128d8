from __future__ import annotations

import logging
from typing import Any, Protocol, runtime_checkable

from mcp.server.lowlevel.server import Server
from mcp.server.models import InitializationOptions

from .channel import Channel

logger = logging.getLogger(__name__)


@runtime_checkable
class ProtocolEngine(Protocol):
    async def connect(self, channel: Channel) -> None: ...


class McpServerEngine:
    """Runs an MCP low-level server over each channel handed to it."""

    def __init__(
        self,
        server: Server[Any, Any],
        *,
        raise_exceptions: bool = False,
        initialization_options: InitializationOptions | None = None,
    ) -> None:
        self._server = server
        self._raise_exceptions = raise_exceptions
        self._initialization_options = initialization_options

    @property
    def server(self) -> Server[Any, Any]:
        return self._server

    def get_initialization_options(self) -> InitializationOptions:
        if self._initialization_options is None:
            self._initialization_options = self._server.create_initialization_options()
        return self._initialization_options

    async def connect(self, channel: Channel) -> None:
        logger.debug("Running %s on session %s", self._server.name, channel.session_id)
        await self._server.run(
            channel.read_stream,
            channel.write_stream,
            self.get_initialization_options(),
            raise_exceptions=self._raise_exceptions,
        )
        logger.debug("Server %s finished on session %s", self._server.name, channel.session_id)
