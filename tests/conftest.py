"""Shared pytest fixtures."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from mcp_sse_router.dispatcher import RequestDispatcher
from mcp_sse_router.store import InMemorySessionRegistry

from tests.helpers import FakeChannelFactory


@pytest.fixture
def registry() -> InMemorySessionRegistry:
    return InMemorySessionRegistry()


@pytest.fixture
def channel_factory() -> FakeChannelFactory:
    return FakeChannelFactory()


@pytest.fixture
def engine() -> AsyncMock:
    fake = AsyncMock()
    fake.connect = AsyncMock(return_value=None)
    return fake


@pytest.fixture
def dispatcher(
    engine: AsyncMock,
    registry: InMemorySessionRegistry,
    channel_factory: FakeChannelFactory,
) -> RequestDispatcher:
    return RequestDispatcher(engine, registry=registry, channel_factory=channel_factory)
