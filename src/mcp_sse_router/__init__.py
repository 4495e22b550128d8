"""Session routing for MCP over HTTP with Server-Sent Events."""

from .channel import Channel, ChannelClosedError, ChannelFactory, SseChannel
from .config import HttpConfig, RouterConfig, load_config
from .dispatcher import RequestDispatcher
from .engine import McpServerEngine, ProtocolEngine
from .model import (
    CORS_HEADERS,
    MESSAGE_PATH,
    STREAM_PATH,
    Session,
    extract_session_id,
    generate_session_id,
)
from .server import build_app, create_demo_server, serve
from .store import InMemorySessionRegistry, SessionRegistry

__all__ = [
    "Session",
    "SessionRegistry",
    "InMemorySessionRegistry",
    "Channel",
    "ChannelFactory",
    "ChannelClosedError",
    "SseChannel",
    "ProtocolEngine",
    "McpServerEngine",
    "RequestDispatcher",
    "HttpConfig",
    "RouterConfig",
    "load_config",
    "build_app",
    "create_demo_server",
    "serve",
    "extract_session_id",
    "generate_session_id",
    "CORS_HEADERS",
    "MESSAGE_PATH",
    "STREAM_PATH",
]
