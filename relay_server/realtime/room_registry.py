"""
Room registry for the pairing relay.

A room is a two-slot record keyed by a caller-chosen identifier. The registry
owns the room id -> record mapping; which connection sits in which slot is
decided by the router, always while holding the registry lock.
"""

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ..logging_config import get_logger
from .connection_models import Role

if TYPE_CHECKING:
    from .relay_connection import RelayConnection

logger = get_logger(__name__)


@dataclass
class RoomRecord:
    """
    One pairing: at most one connection per role.

    Slots hold non-owning references; a record with both slots empty must not
    stay in the registry.
    """

    room_id: str
    created_at: float = field(default_factory=time.time)
    slot_a: "RelayConnection | None" = None
    slot_b: "RelayConnection | None" = None

    def get_slot(self, role: Role) -> "RelayConnection | None":
        return self.slot_a if role is Role.A else self.slot_b

    def set_slot(self, role: Role, connection: "RelayConnection | None") -> None:
        if role is Role.A:
            self.slot_a = connection
        else:
            self.slot_b = connection

    def clear_slot(self, role: Role, connection: "RelayConnection") -> bool:
        """
        Empty the slot only if it still holds `connection`.

        Returns:
            bool: True if the slot was cleared
        """
        if self.get_slot(role) is not connection:
            return False
        self.set_slot(role, None)
        return True

    @property
    def occupancy(self) -> int:
        return (self.slot_a is not None) + (self.slot_b is not None)

    @property
    def is_empty(self) -> bool:
        return self.slot_a is None and self.slot_b is None

    def occupied_slots(self) -> list[tuple[Role, "RelayConnection"]]:
        return [(role, conn) for role in Role if (conn := self.get_slot(role)) is not None]

    def age(self, now: float | None = None) -> float:
        return (now if now is not None else time.time()) - self.created_at


class RoomRegistry:
    """
    Owns the room id -> RoomRecord mapping.

    All slot mutations across all rooms are serialized by `lock`.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._rooms: dict[str, RoomRecord] = {}
        self._clock = clock
        self.lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._rooms)

    def __contains__(self, room_id: object) -> bool:
        return room_id in self._rooms

    @property
    def room_count(self) -> int:
        return len(self._rooms)

    def get(self, room_id: str) -> RoomRecord | None:
        return self._rooms.get(room_id)

    def get_or_create(self, room_id: str) -> RoomRecord:
        """Return the record for `room_id`, creating an empty one if needed."""
        record = self._rooms.get(room_id)
        if record is None:
            record = RoomRecord(room_id=room_id, created_at=self._clock())
            self._rooms[room_id] = record
            logger.info("Room created", room_id=room_id, room_count=len(self._rooms))
        return record

    def remove(self, room_id: str) -> bool:
        """
        Delete a record whose slots are both empty.

        Returns:
            bool: True if a record was deleted
        """
        record = self._rooms.get(room_id)
        if record is None:
            return False
        if not record.is_empty:
            logger.warning("Refusing to remove occupied room", room_id=room_id, occupancy=record.occupancy)
            return False
        del self._rooms[room_id]
        logger.info(
            "Room deleted",
            room_id=room_id,
            age_seconds=round(record.age(self._clock()), 1),
            room_count=len(self._rooms),
        )
        return True

    def rooms(self) -> list[RoomRecord]:
        """Snapshot of all records."""
        return list(self._rooms.values())

    def describe(self) -> list[dict[str, Any]]:
        """Per-room occupancy and age for diagnostics."""
        now = self._clock()
        return [
            {
                "room": record.room_id,
                "peers": record.occupancy,
                "roles": [role.value for role, _ in record.occupied_slots()],
                "age_seconds": round(record.age(now), 1),
            }
            for record in self._rooms.values()
        ]
