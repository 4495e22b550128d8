"""ASGI entry point routing SSE streams and posted messages to sessions.

Requests are classified in order:

* ``OPTIONS`` (any path): CORS preflight, 204.
* ``GET /mcp``: open a channel, register it, connect the engine, stream.
* ``POST /mcp/message/<id>`` or ``POST /mcp/message?sessionId=<id>``:
  hand the request to the session's channel, or 404 if unknown.
* anything else: 404.

CORS headers are added to every response, including streamed ones.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

from starlette.datastructures import MutableHeaders
from starlette.responses import JSONResponse, Response
from starlette.types import Message, Receive, Scope, Send

from .channel import Channel, ChannelFactory, SseChannel
from .engine import ProtocolEngine
from .model import CORS_HEADERS, MESSAGE_PATH, STREAM_PATH, extract_session_id, is_message_post_url
from .store import InMemorySessionRegistry, SessionRegistry

logger = logging.getLogger(__name__)


def request_url(scope: Scope) -> str:
    raw_path = scope.get("raw_path")
    path = raw_path.decode("latin-1") if raw_path else scope.get("path", "")
    query = scope.get("query_string", b"")
    if query:
        return f"{path}?{query.decode('latin-1')}"
    return path


class RequestDispatcher:
    def __init__(
        self,
        engine: ProtocolEngine,
        *,
        registry: SessionRegistry | None = None,
        channel_factory: ChannelFactory | None = None,
    ) -> None:
        self._engine = engine
        self._registry = registry if registry is not None else InMemorySessionRegistry()
        self._channel_factory = channel_factory or SseChannel
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    @property
    def channel_factory(self) -> ChannelFactory:
        return self._channel_factory

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "lifespan":
            await self._handle_lifespan(receive, send)
            return
        if scope["type"] != "http":
            raise ValueError(f"Unsupported ASGI scope type: {scope['type']}")

        async def send_with_cors(message: Message) -> None:
            if message["type"] == "http.response.start":
                message.setdefault("headers", [])
                headers = MutableHeaders(scope=message)
                headers.update(CORS_HEADERS)
            await send(message)

        method = scope["method"]
        url = request_url(scope)

        if method == "OPTIONS":
            await Response(status_code=204)(scope, receive, send_with_cors)
        elif method == "GET" and url == STREAM_PATH:
            await self._open_stream(scope, receive, send_with_cors)
        elif method == "POST" and is_message_post_url(url):
            await self._post_message(url, scope, receive, send_with_cors)
        else:
            logger.info("Not found: %s %s", method, url)
            await JSONResponse({"error": "Not found"}, status_code=404)(scope, receive, send_with_cors)

    async def _open_stream(self, scope: Scope, receive: Receive, send: Send) -> None:
        channel = self._channel_factory(MESSAGE_PATH)
        session_id = channel.session_id

        # Routable before the engine or the client can use the channel.
        self._registry.register(session_id, channel)
        channel.add_close_callback(lambda: self._on_channel_closed(session_id))
        logger.info("New SSE connection, session %s", session_id)

        self._spawn(self._connect(channel), name=f"mcp-connect-{session_id}")
        await channel.start(scope, receive, send)

    def _on_channel_closed(self, session_id: str) -> None:
        self._registry.remove(session_id)
        logger.info("Session %s closed", session_id)

    async def _connect(self, channel: Channel) -> None:
        try:
            await self._engine.connect(channel)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Error connecting protocol engine to session %s", channel.session_id)
            channel.close()

    async def _post_message(self, url: str, scope: Scope, receive: Receive, send: Send) -> None:
        session_id = extract_session_id(url)
        channel = self._registry.lookup(session_id) if session_id else None
        if channel is None:
            logger.warning("Session not found: %s", session_id)
            await JSONResponse({"error": "Session not found"}, status_code=404)(scope, receive, send)
            return

        logger.info("Received message for session %s", session_id)
        try:
            await channel.handle_post_message(scope, receive, send)
        except Exception:
            logger.exception("Error handling POST message for session %s", session_id)

    def _spawn(self, coro: Coroutine[Any, Any, None], name: str) -> None:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def aclose(self) -> None:
        """Close every open session and cancel outstanding engine connections."""
        for session_id in self._registry.session_ids():
            channel = self._registry.lookup(session_id)
            if channel is not None:
                channel.close()
            # Also covers channels that never report closure.
            self._registry.remove(session_id)

        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _handle_lifespan(self, receive: Receive, send: Send) -> None:
        while True:
            message = await receive()
            if message["type"] == "lifespan.startup":
                await send({"type": "lifespan.startup.complete"})
            elif message["type"] == "lifespan.shutdown":
                await self.aclose()
                await send({"type": "lifespan.shutdown.complete"})
                return
