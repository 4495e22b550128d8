from __future__ import annotations

import argparse
import asyncio
import logging

from .config import load_config
from .server import serve


def main() -> None:
    parser = argparse.ArgumentParser(description="MCP server over HTTP with Server-Sent Events")
    parser.add_argument("--host", help="Host to bind to (default: $MCP_HTTP_HOST or 127.0.0.1)")
    parser.add_argument("--port", type=int, help="Port to listen on (default: $MCP_HTTP_PORT or 3000)")
    parser.add_argument("--log-level", help="Logging level (default: $MCP_LOG_LEVEL or INFO)")
    args = parser.parse_args()

    config = load_config(host=args.host, port=args.port, log_level=args.log_level)
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        asyncio.run(serve(config))
    except KeyboardInterrupt:
        logging.getLogger(__name__).info("Shutting down")


if __name__ == "__main__":
    main()
