"""Server-Sent Events channel for one MCP session.

A channel owns the GET response that streams server messages to the client
and accepts the client's POSTed messages for the same session::

    channel = SseChannel("/mcp/message")
    engine_task = asyncio.create_task(engine.connect(channel))
    await channel.start(scope, receive, send)  # returns when the stream ends

The first event on the stream is ``endpoint``, telling the client where to
POST (``/mcp/message?sessionId=<id>``). Every message the engine writes to
``write_stream`` follows as a ``message`` event.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable
from urllib.parse import quote

import anyio
import mcp.types as types
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream
from mcp.shared.message import ServerMessageMetadata, SessionMessage
from pydantic import ValidationError
from sse_starlette import EventSourceResponse
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import Receive, Scope, Send

from .model import SESSION_QUERY_PARAM, generate_session_id

logger = logging.getLogger(__name__)

DEFAULT_MAX_BODY_SIZE = 4 * 1024 * 1024
DEFAULT_PING_INTERVAL = 15

CloseCallback = Callable[[], None]


class ChannelClosedError(RuntimeError):
    pass


@runtime_checkable
class Channel(Protocol):
    @property
    def session_id(self) -> str: ...

    @property
    def read_stream(self) -> MemoryObjectReceiveStream[SessionMessage | Exception]: ...

    @property
    def write_stream(self) -> MemoryObjectSendStream[SessionMessage]: ...

    async def start(self, scope: Scope, receive: Receive, send: Send) -> None: ...

    async def send(self, message: types.JSONRPCMessage) -> None: ...

    async def handle_post_message(self, scope: Scope, receive: Receive, send: Send) -> None: ...

    def add_close_callback(self, callback: CloseCallback) -> None: ...

    def close(self) -> None: ...


ChannelFactory = Callable[[str], Channel]


class SseChannel:
    def __init__(
        self,
        endpoint: str,
        *,
        session_id: str | None = None,
        max_body_size: int = DEFAULT_MAX_BODY_SIZE,
        ping_interval: int = DEFAULT_PING_INTERVAL,
    ) -> None:
        if max_body_size <= 0:
            raise ValueError("max_body_size must be a positive number of bytes")
        if ping_interval <= 0:
            raise ValueError("ping_interval must be a positive number of seconds")
        if "://" in endpoint or "?" in endpoint or "#" in endpoint:
            raise ValueError(f"Endpoint {endpoint!r} must be a relative path such as '/mcp/message'")

        self._endpoint = endpoint if endpoint.startswith("/") else "/" + endpoint
        self._session_id = session_id or generate_session_id()
        self._max_body_size = max_body_size
        self._ping_interval = ping_interval

        self._read_stream_writer, self._read_stream = anyio.create_memory_object_stream[
            SessionMessage | Exception
        ](0)
        self._write_stream, self._write_stream_reader = anyio.create_memory_object_stream[SessionMessage](0)

        self._close_callbacks: list[CloseCallback] = []
        self._started = False
        self._closed = False

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def endpoint_url(self) -> str:
        return f"{quote(self._endpoint)}?{SESSION_QUERY_PARAM}={self._session_id}"

    @property
    def max_body_size(self) -> int:
        return self._max_body_size

    @property
    def ping_interval(self) -> int:
        return self._ping_interval

    @property
    def read_stream(self) -> MemoryObjectReceiveStream[SessionMessage | Exception]:
        return self._read_stream

    @property
    def write_stream(self) -> MemoryObjectSendStream[SessionMessage]:
        return self._write_stream

    @property
    def closed(self) -> bool:
        return self._closed

    async def start(self, scope: Scope, receive: Receive, send: Send) -> None:
        """Stream events on this response until the client or the engine goes away."""
        if self._started:
            raise RuntimeError(f"Channel {self._session_id} already started")
        if self._closed:
            raise ChannelClosedError(f"Channel {self._session_id} is closed")
        self._started = True

        sse_stream_writer, sse_stream_reader = anyio.create_memory_object_stream[dict[str, Any]](0)

        async def sse_writer() -> None:
            async with sse_stream_writer, self._write_stream_reader:
                await sse_stream_writer.send({"event": "endpoint", "data": self.endpoint_url})
                logger.debug("Sent endpoint event for session %s", self._session_id)

                async for session_message in self._write_stream_reader:
                    await sse_stream_writer.send(
                        {
                            "event": "message",
                            "data": session_message.message.model_dump_json(by_alias=True, exclude_none=True),
                        }
                    )

        response = EventSourceResponse(
            content=sse_stream_reader,
            data_sender_callable=sse_writer,
            ping=self._ping_interval,
        )
        try:
            await response(scope, receive, send)
        finally:
            sse_stream_reader.close()
            self._write_stream_reader.close()
            logger.debug("Event stream ended for session %s", self._session_id)
            self.close()

    async def send(self, message: types.JSONRPCMessage) -> None:
        if self._closed:
            raise ChannelClosedError(f"Channel {self._session_id} is closed")
        try:
            await self._write_stream.send(SessionMessage(message))
        except (anyio.ClosedResourceError, anyio.BrokenResourceError) as exc:
            raise ChannelClosedError(f"Channel {self._session_id} is closed") from exc

    async def handle_post_message(self, scope: Scope, receive: Receive, send: Send) -> None:
        request = Request(scope, receive)

        if not self._started or self._closed:
            response = Response("SSE connection not established", status_code=500)
            return await response(scope, receive, send)

        content_type = request.headers.get("content-type", "")
        if content_type.split(";", 1)[0].strip().lower() != "application/json":
            response = Response(f"Unsupported content-type: {content_type}", status_code=400)
            return await response(scope, receive, send)

        declared_length = request.headers.get("content-length", "")
        if declared_length.isdigit() and int(declared_length) > self._max_body_size:
            response = Response("Payload too large", status_code=413)
            return await response(scope, receive, send)

        body = await self._read_body(request)
        if body is None:
            response = Response("Payload too large", status_code=413)
            return await response(scope, receive, send)

        try:
            message = types.JSONRPCMessage.model_validate_json(body)
        except ValidationError as err:
            logger.warning("Could not parse message for session %s", self._session_id)
            response = Response("Could not parse message", status_code=400)
            await response(scope, receive, send)
            await self._deliver(err)
            return

        logger.debug("Accepted message for session %s: %s", self._session_id, message)
        response = Response("Accepted", status_code=202)
        await response(scope, receive, send)
        await self._deliver(SessionMessage(message, metadata=ServerMessageMetadata(request_context=request)))

    async def _read_body(self, request: Request) -> bytes | None:
        chunks: list[bytes] = []
        size = 0
        async for chunk in request.stream():
            size += len(chunk)
            if size > self._max_body_size:
                return None
            chunks.append(chunk)
        return b"".join(chunks)

    async def _deliver(self, item: SessionMessage | Exception) -> None:
        try:
            await self._read_stream_writer.send(item)
        except (anyio.ClosedResourceError, anyio.BrokenResourceError) as exc:
            raise ChannelClosedError(f"Channel {self._session_id} is closed") from exc

    def add_close_callback(self, callback: CloseCallback) -> None:
        """Run ``callback`` once when the channel closes.

        Callbacks run most recently added first. A callback added after the
        channel closed runs immediately.
        """
        if self._closed:
            callback()
            return
        self._close_callbacks.append(callback)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True

        self._read_stream_writer.close()
        self._write_stream.close()
        if not self._started:
            self._write_stream_reader.close()

        callbacks, self._close_callbacks = self._close_callbacks, []
        for callback in reversed(callbacks):
            try:
                callback()
            except Exception:
                logger.exception("Close callback failed for session %s", self._session_id)
