"""
Data models for connection management.

This module defines the data structures the router and liveness monitor
share about each connection: its role/room attachment and its liveness
bookkeeping.
"""

from dataclasses import dataclass, field
from enum import Enum


class Role(str, Enum):
    """The two participant kinds of a room."""

    A = "A"  # sensor / source
    B = "B"  # monitor / sink

    @property
    def opposite(self) -> "Role":
        return Role.B if self is Role.A else Role.A


@dataclass(frozen=True)
class Attachment:
    """The room and role a connection currently occupies."""

    room_id: str
    role: Role


@dataclass
class ConnectionState:
    """
    Per-connection liveness and attachment bookkeeping.

    Timestamps come from the connection's clock (monotonic by default).
    """

    connection_id: str
    established_at: float
    last_activity: float
    is_alive: bool = True
    attachment: Attachment | None = None
    frames_received: int = field(default=0)
