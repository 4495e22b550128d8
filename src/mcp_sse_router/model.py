from __future__ import annotations

import re
import secrets
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .channel import Channel

STREAM_PATH = "/mcp"
MESSAGE_PATH = "/mcp/message"

CORS_HEADERS: dict[str, str] = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}

SESSION_QUERY_PARAM = "sessionId"

_PATH_SESSION_RE = re.compile(re.escape(MESSAGE_PATH) + r"/([^/?]+)")
_QUERY_SESSION_RE = re.compile(r"\?.*" + SESSION_QUERY_PARAM + r"=([^&]+)")


@dataclass
class Session:
    id: str
    channel: Channel


def generate_session_id() -> str:
    return secrets.token_hex(16)


def extract_session_id(url: str | None) -> str | None:
    """Return the session id carried by a message-post URL, or None.

    ``/mcp/message/<id>`` is tried first, then a ``sessionId=<id>`` query
    parameter. The captured text is returned as-is, without percent-decoding.
    """
    if not isinstance(url, str) or not url:
        return None

    path_match = _PATH_SESSION_RE.search(url)
    if path_match:
        return path_match.group(1)

    query_match = _QUERY_SESSION_RE.search(url)
    return query_match.group(1) if query_match else None


def is_message_post_url(url: str) -> bool:
    return url.startswith(MESSAGE_PATH + "/") or url.startswith(MESSAGE_PATH + "?")
