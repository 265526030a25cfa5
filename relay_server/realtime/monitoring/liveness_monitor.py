"""
Liveness monitoring for relay connections.

Every sweep probes each open connection and evicts those that either missed
the previous probe or have sent nothing for longer than the idle timeout.
Either signal alone is enough. Evicted connections go through the router's
standard leave procedure, and slots still pointing at closed connections are
reclaimed.
"""

import asyncio
import time
from collections.abc import Callable
from dataclasses import asdict, dataclass
from typing import Any

from ...logging_config import get_logger
from ..connection_manager import ConnectionManager
from ..relay_connection import RelayConnection
from ..room_registry import RoomRegistry
from ..router import MessageRouter

logger = get_logger(__name__)


@dataclass
class SweepReport:
    """Outcome of one liveness sweep."""

    probed: int = 0
    evicted_unresponsive: int = 0
    evicted_idle: int = 0
    orphans_reclaimed: int = 0
    active_connections: int = 0
    rooms: int = 0
    duration_ms: float = 0.0

    @property
    def evicted(self) -> int:
        return self.evicted_unresponsive + self.evicted_idle

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["evicted"] = self.evicted
        return data


class LivenessMonitor:
    """
    Periodic heartbeat sweep over all open connections.

    Two independent eviction signals:
    - missed probe: `is_alive` still false from the previous sweep
    - stale activity: no inbound frame for longer than `idle_timeout`
    """

    def __init__(
        self,
        connection_manager: ConnectionManager,
        router: MessageRouter,
        registry: RoomRegistry,
        probe_interval: float = 30.0,
        idle_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize the liveness monitor.

        Args:
            connection_manager: Source of the open connections to sweep
            router: Runs the leave procedure for evicted connections
            registry: Room registry checked for orphaned slots
            probe_interval: Seconds between sweeps
            idle_timeout: Seconds without inbound frames before eviction
            clock: Must be the same clock the connections use for last_activity
        """
        self.connection_manager = connection_manager
        self.router = router
        self.registry = registry
        self.probe_interval = probe_interval
        self.idle_timeout = idle_timeout
        self._clock = clock

        self._task: asyncio.Task[None] | None = None
        self.last_report: SweepReport | None = None
        self.sweep_count = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def sweep(self) -> SweepReport:
        """Run one probe/evict pass and return what it did."""
        start = time.perf_counter()
        report = SweepReport()
        now = self._clock()

        for connection in self.connection_manager.active_connections():
            if not connection.is_alive:
                logger.info(
                    "Evicting unresponsive connection",
                    connection_id=connection.connection_id,
                    attachment=str(connection.attachment),
                )
                await self._evict(connection, reason="missed liveness probe")
                report.evicted_unresponsive += 1
            elif now - connection.last_activity > self.idle_timeout:
                logger.info(
                    "Evicting idle connection",
                    connection_id=connection.connection_id,
                    idle_seconds=round(now - connection.last_activity, 1),
                    idle_timeout=self.idle_timeout,
                )
                await self._evict(connection, reason="idle timeout")
                report.evicted_idle += 1
            else:
                connection.is_alive = False
                connection.probe()
                report.probed += 1

        report.orphans_reclaimed = await self._reclaim_orphans()
        report.active_connections = len(self.connection_manager.active_connections())
        report.rooms = self.registry.room_count
        report.duration_ms = (time.perf_counter() - start) * 1000

        self.last_report = report
        self.sweep_count += 1
        logger.info("Liveness sweep completed", **report.to_dict())
        for room in self.registry.describe():
            logger.debug("Room status", **room)
        return report

    async def _evict(self, connection: RelayConnection, reason: str) -> None:
        try:
            await connection.terminate(reason=reason)
        finally:
            await self.router.handle_disconnect(connection, reason=reason)

    async def _reclaim_orphans(self) -> int:
        reclaimed = 0
        for record in self.registry.rooms():
            for role, connection in record.occupied_slots():
                if connection.is_open and connection in self.connection_manager:
                    continue
                logger.info(
                    "Reclaiming orphaned slot",
                    room_id=record.room_id,
                    role=role.value,
                    connection_id=connection.connection_id,
                )
                if await self.router.reclaim_slot(record.room_id, role, connection):
                    reclaimed += 1
        return reclaimed

    async def run(self) -> None:
        """Sweep every `probe_interval` seconds until cancelled."""
        logger.info(
            "Starting liveness monitor",
            probe_interval_seconds=self.probe_interval,
            idle_timeout_seconds=self.idle_timeout,
        )
        try:
            while True:
                await asyncio.sleep(self.probe_interval)
                try:
                    await self.sweep()
                except Exception as e:  # pylint: disable=broad-except  # Reason: a failed sweep must not stop the next one
                    logger.error("Error in liveness sweep", error=str(e), exc_info=True)
        except asyncio.CancelledError:
            logger.info("Liveness monitor cancelled")
            raise

    def start(self) -> None:
        """Start the periodic sweep task on the running loop."""
        if self.is_running:
            logger.warning("Liveness monitor already running")
            return
        self._task = asyncio.create_task(self.run(), name="liveness_monitor/periodic_sweep")

    async def stop(self) -> None:
        """Cancel the sweep task and wait for it to finish."""
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await asyncio.wait_for(task, timeout=5.0)
        except (TimeoutError, asyncio.CancelledError):
            pass
        logger.info("Liveness monitor stopped")
