"""
Message router for the pairing relay.

The router validates inbound frames and applies them to the room registry:
join claims a slot (displacing a previous occupant), leave releases it,
audio is forwarded to the opposite slot, ping is echoed. Leave handling is
shared by explicit leave frames, transport close and liveness eviction.
"""

from typing import Any

from ..error_types import ErrorMessages, ErrorType
from ..exceptions import ErrorContext, ProtocolError
from ..logging_config import get_logger
from .connection_models import Role
from .envelope import (
    AudioMessage,
    InboundMessage,
    JoinMessage,
    LeaveMessage,
    PingMessage,
    build_audio,
    build_error,
    build_peer_joined,
    build_peer_left,
    build_pong,
    build_room_info,
    parse_inbound_message,
)
from .relay_connection import RelayConnection
from .room_registry import RoomRecord, RoomRegistry

logger = get_logger(__name__)

DISPLACEMENT_REASON = "replaced by new attachment"


def _is_empty_payload(data: Any) -> bool:
    if data is None:
        return True
    if isinstance(data, (str, bytes, bytearray, list, dict)):
        return len(data) == 0
    return False


class MessageRouter:
    """
    Dispatches inbound frames for every connection.

    The registry is passed in explicitly; the router keeps no other state.
    """

    def __init__(self, registry: RoomRegistry, max_message_size: int | None = None) -> None:
        self.registry = registry
        self.max_message_size = max_message_size

    # Frame entry points -----------------------------------------------------

    async def handle_text_frame(self, connection: RelayConnection, raw: str) -> None:
        """
        Decode and dispatch one text frame.

        Protocol errors are answered with an `error` frame; nothing else about
        a single bad frame affects the connection or any other connection.
        """
        connection.record_activity()
        try:
            message = parse_inbound_message(raw, self.max_message_size, context=self._error_context(connection))
        except ProtocolError as e:
            connection.send(build_error(e.user_friendly))
            return
        if message is None:
            return

        try:
            await self.dispatch(connection, message)
        except Exception as e:  # pylint: disable=broad-except  # Reason: one bad frame must not end the connection
            logger.error(
                "Error processing message",
                connection_id=connection.connection_id,
                message_type=message.type,
                error_type=ErrorType.MESSAGE_PROCESSING_ERROR.value,
                error=str(e),
                exc_info=True,
            )
            connection.send(build_error(ErrorMessages.MESSAGE_PROCESSING_ERROR))

    async def handle_binary_frame(self, connection: RelayConnection, data: bytes) -> None:
        """Binary frames are audio payloads relayed verbatim."""
        connection.record_activity()
        if self.max_message_size is not None and len(data) > self.max_message_size:
            logger.warning(
                "Binary frame exceeds size limit",
                connection_id=connection.connection_id,
                size=len(data),
                max_size=self.max_message_size,
            )
            connection.send(build_error(ErrorMessages.MESSAGE_TOO_LARGE))
            return
        self.handle_audio(connection, data)

    @staticmethod
    def _error_context(connection: RelayConnection) -> ErrorContext:
        attachment = connection.attachment
        return ErrorContext(
            connection_id=connection.connection_id,
            room_id=attachment.room_id if attachment else None,
            role=attachment.role.value if attachment else None,
        )

    async def dispatch(self, connection: RelayConnection, message: InboundMessage) -> None:
        """
        Apply one decoded message.

        `pong` needs no handling of its own: receiving any frame already
        marks the connection alive.
        """
        if isinstance(message, JoinMessage):
            await self.handle_join(connection, message.room, message.mode)
        elif isinstance(message, AudioMessage):
            self.handle_audio(connection, message.data)
        elif isinstance(message, LeaveMessage):
            await self.handle_leave(connection)
        elif isinstance(message, PingMessage):
            connection.send(build_pong(message.timestamp))

    # Join -------------------------------------------------------------------

    async def handle_join(self, connection: RelayConnection, room_id: str, role: Role) -> None:
        """
        Install `connection` in the `role` slot of `room_id`.

        A different connection already in that slot is detached under the
        lock and closed once the lock is released. A connection attached
        elsewhere leaves its previous room before joining.
        """
        if not connection.is_open:
            return
        displaced: RelayConnection | None = None
        async with self.registry.lock:
            # May have been displaced while waiting for the lock
            if not connection.is_open:
                return
            current = connection.attachment
            if current is not None and (current.room_id != room_id or current.role is not role):
                self._release(connection, reason="rejoin")

            record = self.registry.get_or_create(room_id)
            occupant = record.get_slot(role)
            if occupant is not None and occupant is not connection:
                occupant.detach()
                occupant.begin_close(code=1000, reason=DISPLACEMENT_REASON)
                displaced = occupant
                logger.info(
                    "Displacing previous slot occupant",
                    connection_id=occupant.connection_id,
                    room_id=room_id,
                    role=role.value,
                )

            record.set_slot(role, connection)
            connection.attach(room_id, role)

            logger.info(
                "Peer joined room",
                connection_id=connection.connection_id,
                room_id=room_id,
                role=role.value,
                peers=record.occupancy,
            )

            connection.send(build_room_info(room_id, record.occupancy))

            peer = record.get_slot(role.opposite)
            if peer is not None:
                peer.send(build_peer_joined(role))
                connection.send(build_peer_joined(role.opposite))
                logger.info("Room paired", room_id=room_id)

        if displaced is not None:
            await self._close_displaced(displaced)

    async def _close_displaced(self, occupant: RelayConnection) -> None:
        try:
            await occupant.close(code=1000, reason=DISPLACEMENT_REASON)
        except Exception as e:  # pylint: disable=broad-except  # Reason: displacement proceeds even if the old socket misbehaves
            logger.debug("Ignoring error closing displaced connection", connection_id=occupant.connection_id, error=str(e))

    # Leave ------------------------------------------------------------------

    async def handle_leave(self, connection: RelayConnection, reason: str = "leave") -> bool:
        """
        Release the connection's slot, notify the peer, drop an empty room.

        Returns:
            bool: True if a slot was released
        """
        async with self.registry.lock:
            return self._release(connection, reason=reason)

    async def handle_disconnect(self, connection: RelayConnection, reason: str = "close") -> bool:
        """Transport close or eviction: release any slot, then mark the connection closed."""
        released = await self.handle_leave(connection, reason=reason)
        connection.mark_closed()
        return released

    async def reclaim_slot(self, room_id: str, role: Role, connection: RelayConnection) -> bool:
        """
        Release a slot whose connection is gone without having left.

        Used by the liveness monitor for orphaned slots.
        """
        async with self.registry.lock:
            attachment = connection.attachment
            if attachment is not None and attachment.room_id == room_id and attachment.role is role:
                return self._release(connection, reason="orphaned")
            record = self.registry.get(room_id)
            if record is None:
                return False
            return self._vacate(record, role, connection, reason="orphaned")

    def _release(self, connection: RelayConnection, reason: str) -> bool:
        """Caller must hold the registry lock."""
        attachment = connection.detach()
        if attachment is None:
            return False

        record = self.registry.get(attachment.room_id)
        if record is None:
            return False
        return self._vacate(record, attachment.role, connection, reason)

    def _vacate(self, record: RoomRecord, role: Role, connection: RelayConnection, reason: str) -> bool:
        if not record.clear_slot(role, connection):
            logger.debug(
                "Stale leave ignored",
                connection_id=connection.connection_id,
                room_id=record.room_id,
                role=role.value,
            )
            return False

        peer = record.get_slot(role.opposite)
        if peer is not None:
            peer.send(build_peer_left(role))

        logger.info(
            "Peer left room",
            connection_id=connection.connection_id,
            room_id=record.room_id,
            role=role.value,
            reason=reason,
        )

        if record.is_empty:
            self.registry.remove(record.room_id)
        return True

    # Audio ------------------------------------------------------------------

    def handle_audio(self, connection: RelayConnection, data: Any) -> bool:
        """
        Forward a payload to the opposite slot of the sender's room.

        Best effort: every miss is dropped and logged at debug level.

        Returns:
            bool: True if the frame was queued for the peer
        """
        attachment = connection.attachment
        if attachment is None:
            logger.debug("Dropping audio from unattached connection", connection_id=connection.connection_id)
            return False
        if _is_empty_payload(data):
            logger.debug("Dropping empty audio payload", connection_id=connection.connection_id)
            return False

        record = self.registry.get(attachment.room_id)
        if record is None:
            logger.debug("Dropping audio for missing room", room_id=attachment.room_id)
            return False

        peer = record.get_slot(attachment.role.opposite)
        if peer is None or not peer.is_open:
            logger.debug("Dropping audio, no open peer", room_id=attachment.room_id, role=attachment.role.value)
            return False

        frame = bytes(data) if isinstance(data, (bytes, bytearray)) else build_audio(data)
        if not peer.send(frame):
            logger.debug("Dropping audio, peer not accepting frames", room_id=attachment.room_id)
            return False
        return True
