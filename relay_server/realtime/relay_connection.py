"""
Transport adapter for one relay peer.

RelayConnection wraps a FastAPI WebSocket and gives the router and the
liveness monitor the primitives they need: a non-blocking send, graceful
close, abrupt terminate, a liveness probe and an open/closed flag.

Outbound frames are queued and written by a dedicated writer task, so a slow
peer never stalls the connection that is relaying to it.
"""

import asyncio
import json
import time
import uuid
from collections.abc import Callable
from typing import Any

from fastapi import WebSocket

from ..logging_config import get_logger
from .connection_models import Attachment, ConnectionState, Role
from .connection_state_machine import ConnectionLifecycle
from .envelope import build_probe

logger = get_logger(__name__)

# Close code used when the liveness monitor evicts a connection
EVICTION_CLOSE_CODE = 4000

_CLOSE_SENTINEL = object()


class RelayConnection:
    """One attached network peer."""

    def __init__(
        self,
        websocket: WebSocket,
        *,
        outbound_queue_size: int = 256,
        clock: Callable[[], float] = time.monotonic,
        connection_id: str | None = None,
    ) -> None:
        self.websocket = websocket
        self.connection_id = connection_id or str(uuid.uuid4())
        self._clock = clock
        now = clock()
        self.state = ConnectionState(connection_id=self.connection_id, established_at=now, last_activity=now)
        self.lifecycle = ConnectionLifecycle(self.connection_id)

        self._outbound: asyncio.Queue[Any] = asyncio.Queue(maxsize=outbound_queue_size)
        self._writer_task: asyncio.Task[None] | None = None
        self._closing = False
        self._transport_close_requested = False
        self.close_code: int | None = None
        self.close_reason: str | None = None
        self.dropped_frames = 0

    def __repr__(self) -> str:
        return f"<RelayConnection {self.connection_id} {self.lifecycle.current_state.id}>"

    # Attachment -----------------------------------------------------------

    @property
    def attachment(self) -> Attachment | None:
        return self.state.attachment

    def attach(self, room_id: str, role: Role) -> None:
        """Record the room/role this connection now occupies."""
        self.state.attachment = Attachment(room_id=room_id, role=role)
        self.lifecycle.attach()

    def detach(self) -> Attachment | None:
        """Clear the attachment and return the one that was cleared."""
        attachment = self.state.attachment
        self.state.attachment = None
        if self.lifecycle.attached.is_active:
            self.lifecycle.detach()
        return attachment

    # Liveness ---------------------------------------------------------------

    @property
    def is_alive(self) -> bool:
        return self.state.is_alive

    @is_alive.setter
    def is_alive(self, value: bool) -> None:
        self.state.is_alive = value

    @property
    def last_activity(self) -> float:
        return self.state.last_activity

    def record_activity(self) -> None:
        """
        Note that an inbound frame of any kind arrived.

        Any frame also marks the connection alive: a peer that is sending is
        reachable, whether or not it understands `ping`.
        """
        self.state.last_activity = self._clock()
        self.state.frames_received += 1
        self.state.is_alive = True

    def probe(self) -> bool:
        """Send a server ping; any inbound frame (`pong` included) answers it."""
        return self.send(build_probe(int(time.time() * 1000)))

    # Transport --------------------------------------------------------------

    @property
    def is_open(self) -> bool:
        return not self._closing and not self.lifecycle.is_closed

    def start(self) -> None:
        """Start the writer task; must be called from the event loop."""
        if self._writer_task is None:
            self._writer_task = asyncio.create_task(
                self._write_loop(), name=f"relay_connection/{self.connection_id}/writer"
            )

    def send(self, frame: dict[str, Any] | bytes) -> bool:
        """
        Queue a frame for delivery without waiting.

        Args:
            frame: JSON-serializable message dict, or raw bytes for a binary frame

        Returns:
            bool: False if the connection is closing or its queue is full
        """
        if not self.is_open:
            return False
        try:
            self._outbound.put_nowait(frame)
        except asyncio.QueueFull:
            self.dropped_frames += 1
            logger.warning(
                "Outbound queue full, dropping frame",
                connection_id=self.connection_id,
                queue_size=self._outbound.maxsize,
                dropped_frames=self.dropped_frames,
            )
            return False
        return True

    def pending_frames(self) -> list[Any]:
        """Drain and return every queued frame that has not been written yet."""
        frames = []
        while not self._outbound.empty():
            frame = self._outbound.get_nowait()
            if frame is not _CLOSE_SENTINEL:
                frames.append(frame)
        return frames

    def begin_close(self, code: int = 1000, reason: str = "") -> bool:
        """
        Stop accepting frames and record the close code, without waiting.

        Returns:
            bool: False if the connection was already closing
        """
        if self._closing:
            return False
        self._closing = True
        self.close_code = code
        self.close_reason = reason
        logger.debug("Closing connection", connection_id=self.connection_id, code=code, reason=reason)
        return True

    async def close(self, code: int = 1000, reason: str = "") -> None:
        """
        Close gracefully: frames already queued are written first.

        Safe to call more than once; only the first call has an effect. A
        close started with begin_close() keeps its code and reason.
        """
        self.begin_close(code, reason)
        if self._transport_close_requested:
            return
        self._transport_close_requested = True

        if self._writer_task is not None and not self._writer_task.done():
            try:
                self._outbound.put_nowait(_CLOSE_SENTINEL)
                return
            except asyncio.QueueFull:
                self._writer_task.cancel()
        await self._close_transport()

    async def terminate(self, reason: str = "liveness timeout") -> None:
        """Drop the connection immediately, discarding queued frames."""
        if not self.begin_close(EVICTION_CLOSE_CODE, reason):
            logger.debug("Terminating connection that was already closing", connection_id=self.connection_id)
        self._transport_close_requested = True
        if self._writer_task is not None and not self._writer_task.done():
            self._writer_task.cancel()
        discarded = self.pending_frames()
        if discarded:
            logger.debug("Discarded queued frames", connection_id=self.connection_id, count=len(discarded))
        await self._close_transport()

    def mark_closed(self) -> None:
        """The transport reported the peer gone; no further frames will be accepted."""
        self._closing = True
        self._transport_close_requested = True
        if not self.lifecycle.is_closed:
            self.lifecycle.disconnect()

    async def shutdown(self) -> None:
        """Stop the writer task and wait for it to finish."""
        self.mark_closed()
        task = self._writer_task
        if task is None or task.done():
            return
        # Let a pending graceful close flush; otherwise stop waiting on the queue
        if self._outbound.empty():
            task.cancel()
        try:
            await asyncio.wait_for(task, timeout=5.0)
        except (TimeoutError, asyncio.CancelledError):
            pass

    async def _write_loop(self) -> None:
        try:
            while True:
                frame = await self._outbound.get()
                if frame is _CLOSE_SENTINEL:
                    await self._close_transport()
                    return
                if isinstance(frame, (bytes, bytearray)):
                    await self.websocket.send_bytes(bytes(frame))
                else:
                    await self.websocket.send_text(json.dumps(frame))
        except asyncio.CancelledError:
            raise
        except Exception as e:  # pylint: disable=broad-except  # Reason: any transport failure ends delivery for this peer only
            logger.debug(
                "Writer stopped after transport error",
                connection_id=self.connection_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            self._closing = True

    async def _close_transport(self) -> None:
        code = self.close_code if self.close_code is not None else 1000
        try:
            await self.websocket.close(code=code, reason=self.close_reason or "")
        except Exception as e:  # pylint: disable=broad-except  # Reason: closing a socket that is already gone is not an error
            logger.debug(
                "Ignoring error while closing transport",
                connection_id=self.connection_id,
                error=str(e),
                error_type=type(e).__name__,
            )
