"""
Registry of open relay connections.

The connection manager tracks every connection between WebSocket accept and
transport close. The liveness monitor sweeps this set; shutdown closes it.
"""

import asyncio
from collections import Counter
from typing import Any

from ..logging_config import get_logger
from .relay_connection import RelayConnection

logger = get_logger(__name__)


class ConnectionManager:
    """Tracks open connections by connection id."""

    def __init__(self) -> None:
        self._connections: dict[str, RelayConnection] = {}
        self.total_connections = 0

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, connection: object) -> bool:
        return isinstance(connection, RelayConnection) and connection.connection_id in self._connections

    def register(self, connection: RelayConnection) -> None:
        self._connections[connection.connection_id] = connection
        self.total_connections += 1
        logger.info(
            "Connection registered",
            connection_id=connection.connection_id,
            active_connections=len(self._connections),
        )

    def unregister(self, connection: RelayConnection) -> None:
        if self._connections.pop(connection.connection_id, None) is not None:
            logger.info(
                "Connection unregistered",
                connection_id=connection.connection_id,
                active_connections=len(self._connections),
            )

    def get(self, connection_id: str) -> RelayConnection | None:
        return self._connections.get(connection_id)

    def active_connections(self) -> list[RelayConnection]:
        """Snapshot of registered connections that are still open."""
        return [connection for connection in self._connections.values() if connection.is_open]

    def all_connections(self) -> list[RelayConnection]:
        return list(self._connections.values())

    def get_stats(self) -> dict[str, Any]:
        connections = self.all_connections()
        lifecycle_states = Counter(connection.lifecycle.get_stats()["current_state"] for connection in connections)
        return {
            "registered_connections": len(connections),
            "open_connections": sum(1 for connection in connections if connection.is_open),
            "attached_connections": sum(1 for connection in connections if connection.attachment is not None),
            "total_connections": self.total_connections,
            "lifecycle_states": dict(lifecycle_states),
        }

    async def close_all(self, code: int = 1001, reason: str = "server shutting down") -> None:
        """Close every registered connection gracefully."""
        connections = self.all_connections()
        if not connections:
            return
        logger.info("Closing all connections", count=len(connections), code=code, reason=reason)
        results = await asyncio.gather(
            *(connection.close(code=code, reason=reason) for connection in connections),
            return_exceptions=True,
        )
        for connection, result in zip(connections, results, strict=True):
            if isinstance(result, Exception):
                logger.debug("Error closing connection during shutdown", connection_id=connection.connection_id, error=str(result))
