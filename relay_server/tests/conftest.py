"""
Test configuration and fixtures for the pairing relay server.

Connections in unit tests are real RelayConnection objects around a mocked
WebSocket. Their writer task is never started, so every frame the code under
test sends stays in the outbound queue where helpers.sent() can read it.
"""

import os

import pytest

# Set before any relay_server import reads configuration
os.environ.setdefault("LOGGING_DISABLE_LOGGING", "true")
os.environ.setdefault("LOGGING_ENVIRONMENT", "unit_test")

from relay_server.realtime.connection_manager import ConnectionManager  # noqa: E402
from relay_server.realtime.relay_connection import RelayConnection  # noqa: E402
from relay_server.realtime.room_registry import RoomRegistry  # noqa: E402
from relay_server.realtime.router import MessageRouter  # noqa: E402

from .helpers import ManualClock, create_mock_websocket  # noqa: E402


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def registry() -> RoomRegistry:
    return RoomRegistry()


@pytest.fixture
def router(registry: RoomRegistry) -> MessageRouter:
    return MessageRouter(registry, max_message_size=1024)


@pytest.fixture
def connection_manager() -> ConnectionManager:
    return ConnectionManager()


@pytest.fixture
def make_connection(clock, connection_manager):
    """Factory for registered connections sharing the test clock."""

    def _make(register: bool = True, queue_size: int = 64) -> RelayConnection:
        connection = RelayConnection(create_mock_websocket(), outbound_queue_size=queue_size, clock=clock)
        if register:
            connection_manager.register(connection)
        return connection

    return _make
