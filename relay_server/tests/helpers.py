"""Shared helpers for relay server tests."""

from unittest.mock import AsyncMock, Mock

from fastapi import WebSocket

from relay_server.realtime.relay_connection import RelayConnection


class ManualClock:
    """Deterministic clock for liveness tests."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def create_mock_websocket() -> Mock:
    """Create a mock WebSocket with async transport methods."""
    websocket = Mock(spec=WebSocket)
    websocket.accept = AsyncMock()
    websocket.close = AsyncMock()
    websocket.send_text = AsyncMock()
    websocket.send_bytes = AsyncMock()
    websocket.receive = AsyncMock()
    return websocket


def sent(connection: RelayConnection) -> list:
    """Drain the frames queued for a connection."""
    return connection.pending_frames()


def sent_types(connection: RelayConnection) -> list[str]:
    """Drain the queued frames and return their `type` fields."""
    return [frame["type"] for frame in sent(connection) if isinstance(frame, dict)]
