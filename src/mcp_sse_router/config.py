from __future__ import annotations

import os
from collections.abc import Mapping

from pydantic import BaseModel, Field, field_validator

from .channel import DEFAULT_MAX_BODY_SIZE, DEFAULT_PING_INTERVAL

ENV_HOST = "MCP_HTTP_HOST"
ENV_PORT = "MCP_HTTP_PORT"
ENV_LOG_LEVEL = "MCP_LOG_LEVEL"
ENV_PING_INTERVAL = "MCP_SSE_PING_INTERVAL"
ENV_MAX_BODY_SIZE = "MCP_MAX_BODY_SIZE"

LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


class HttpConfig(BaseModel):
    host: str = "127.0.0.1"
    port: int = Field(default=3000, ge=0, le=65535)


class RouterConfig(BaseModel):
    http: HttpConfig = Field(default_factory=HttpConfig)
    log_level: str = "INFO"
    ping_interval: int = Field(default=DEFAULT_PING_INTERVAL, gt=0)
    max_body_size: int = Field(default=DEFAULT_MAX_BODY_SIZE, gt=0)

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: object) -> object:
        if isinstance(value, str):
            value = value.strip().upper()
        if value not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}")
        return value

    @property
    def stream_url(self) -> str:
        return f"http://{self.http.host}:{self.http.port}/mcp"


def load_config(environ: Mapping[str, str] | None = None, **overrides: object) -> RouterConfig:
    """Build a RouterConfig from environment variables, then apply overrides.

    Overrides whose value is None are ignored, so argparse results can be
    passed straight through. Invalid values raise pydantic.ValidationError.
    """
    env = os.environ if environ is None else environ

    http: dict[str, object] = {}
    if ENV_HOST in env:
        http["host"] = env[ENV_HOST]
    if ENV_PORT in env:
        http["port"] = env[ENV_PORT]

    data: dict[str, object] = {"http": http}
    if ENV_LOG_LEVEL in env:
        data["log_level"] = env[ENV_LOG_LEVEL]
    if ENV_PING_INTERVAL in env:
        data["ping_interval"] = env[ENV_PING_INTERVAL]
    if ENV_MAX_BODY_SIZE in env:
        data["max_body_size"] = env[ENV_MAX_BODY_SIZE]

    for key, value in overrides.items():
        if value is None:
            continue
        if key in ("host", "port"):
            http[key] = value
        else:
            data[key] = value

    return RouterConfig.model_validate(data)
