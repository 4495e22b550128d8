from __future__ import annotations

import logging
from functools import partial
from typing import Any

import mcp.types as types
import uvicorn
from mcp.server.lowlevel.server import Server

from .channel import SseChannel
from .config import RouterConfig
from .dispatcher import RequestDispatcher
from .engine import McpServerEngine, ProtocolEngine

logger = logging.getLogger(__name__)

SERVER_NAME = "mcp-sse-router"

ECHO_TOOL = types.Tool(
    name="echo",
    description="Echo back the input message",
    inputSchema={
        "type": "object",
        "properties": {
            "message": {
                "type": "string",
                "description": "Message to echo",
            }
        },
        "required": ["message"],
    },
)


def create_demo_server(name: str = SERVER_NAME) -> Server[Any, Any]:
    server: Server[Any, Any] = Server(name)

    @server.list_tools()
    async def list_tools() -> list[types.Tool]:
        return [ECHO_TOOL]

    @server.call_tool()
    async def call_tool(tool_name: str, arguments: dict[str, Any]) -> list[types.TextContent]:
        if tool_name != ECHO_TOOL.name:
            raise ValueError(f"Unknown tool: {tool_name}")
        return [types.TextContent(type="text", text=str(arguments.get("message", "")))]

    return server


def build_app(engine: ProtocolEngine, config: RouterConfig | None = None) -> RequestDispatcher:
    config = config or RouterConfig()
    channel_factory = partial(
        SseChannel,
        max_body_size=config.max_body_size,
        ping_interval=config.ping_interval,
    )
    return RequestDispatcher(engine, channel_factory=channel_factory)


async def serve(config: RouterConfig, server: Server[Any, Any] | None = None) -> None:
    engine = McpServerEngine(server or create_demo_server())
    app = build_app(engine, config)

    uvicorn_config = uvicorn.Config(
        app,
        host=config.http.host,
        port=config.http.port,
        log_level=config.log_level.lower(),
        lifespan="on",
    )
    logger.info("MCP Server listening on %s", config.stream_url)
    await uvicorn.Server(uvicorn_config).serve()
