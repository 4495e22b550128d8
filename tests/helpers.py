"""ASGI helpers and collaborator doubles shared by the router tests."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

from starlette.requests import Request
from starlette.responses import Response


def make_scope(
    method: str,
    path: str,
    query: str = "",
    headers: list[tuple[bytes, bytes]] | None = None,
) -> dict[str, Any]:
    return {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": method,
        "scheme": "http",
        "path": path,
        "raw_path": path.encode(),
        "query_string": query.encode(),
        "root_path": "",
        "headers": headers or [],
        "client": ("127.0.0.1", 50000),
        "server": ("127.0.0.1", 3000),
    }


class AsgiConnection:
    """Client side of one ASGI request: feeds the body, records what the app sends."""

    def __init__(self, body: bytes = b"") -> None:
        self.messages: list[dict[str, Any]] = []
        self.disconnected = asyncio.Event()
        self._body = body
        self._body_sent = False

    async def receive(self) -> dict[str, Any]:
        if not self._body_sent:
            self._body_sent = True
            return {"type": "http.request", "body": self._body, "more_body": False}
        await self.disconnected.wait()
        return {"type": "http.disconnect"}

    async def send(self, message: dict[str, Any]) -> None:
        self.messages.append(message)

    def disconnect(self) -> None:
        self.disconnected.set()

    @property
    def status(self) -> int | None:
        for message in self.messages:
            if message["type"] == "http.response.start":
                return message["status"]
        return None

    @property
    def headers(self) -> dict[str, str]:
        for message in self.messages:
            if message["type"] == "http.response.start":
                return {k.decode().lower(): v.decode() for k, v in message["headers"]}
        return {}

    @property
    def body(self) -> bytes:
        return b"".join(
            message.get("body", b"") for message in self.messages if message["type"] == "http.response.body"
        )

    async def wait_for_body(self, needle: bytes, timeout: float = 5.0) -> None:
        async def poll() -> None:
            while needle not in self.body:
                await asyncio.sleep(0.01)

        await asyncio.wait_for(poll(), timeout)


class FakeChannel:
    """Channel double that answers requests immediately and records posts."""

    def __init__(self, endpoint: str, session_id: str) -> None:
        self.endpoint = endpoint
        self.session_id = session_id
        self.read_stream = None
        self.write_stream = None
        self.started = False
        self.closed = False
        self.posts: list[bytes] = []
        self.on_start: Callable[[FakeChannel], None] | None = None
        self.post_error: Exception | None = None
        self._close_callbacks: list[Callable[[], None]] = []

    async def start(self, scope, receive, send) -> None:
        self.started = True
        if self.on_start is not None:
            self.on_start(self)
        data = f"event: endpoint\r\ndata: {self.endpoint}?sessionId={self.session_id}\r\n\r\n"
        await Response(data, media_type="text/event-stream")(scope, receive, send)

    async def send(self, message) -> None:
        pass

    async def handle_post_message(self, scope, receive, send) -> None:
        if self.post_error is not None:
            raise self.post_error
        self.posts.append(await Request(scope, receive).body())
        await Response("Accepted", status_code=202)(scope, receive, send)

    def add_close_callback(self, callback: Callable[[], None]) -> None:
        self._close_callbacks.append(callback)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        for callback in reversed(self._close_callbacks):
            callback()


class FakeChannelFactory:
    def __init__(self, session_ids: list[str] | None = None) -> None:
        self._session_ids = list(session_ids or [])
        self.channels: list[FakeChannel] = []

    def __call__(self, endpoint: str) -> FakeChannel:
        if self._session_ids:
            session_id = self._session_ids.pop(0)
        else:
            session_id = f"session-{len(self.channels) + 1}"
        channel = FakeChannel(endpoint, session_id)
        self.channels.append(channel)
        return channel


async def drain() -> None:
    """Let spawned tasks run to their next suspension point."""
    for _ in range(5):
        await asyncio.sleep(0)
