"""
Status endpoints for the pairing relay server.

Read-only diagnostics: `GET /` is the short status document, `GET /status`
adds connection counts, per-room occupancy and the last liveness sweep.
"""

from typing import Any

from fastapi import APIRouter, Request
from pydantic import BaseModel

from ..logging_config import get_logger

logger = get_logger(__name__)

status_router = APIRouter(tags=["status"])


class StatusResponse(BaseModel):
    """Short status document."""

    status: str
    message: str
    rooms: int


class RoomStatus(BaseModel):
    room: str
    peers: int
    roles: list[str]
    age_seconds: float


class DiagnosticsResponse(BaseModel):
    """Full diagnostics."""

    status: str
    rooms: int
    connections: dict[str, Any]
    room_details: list[RoomStatus]
    liveness: dict[str, Any]


@status_router.get("/", response_model=StatusResponse)
async def read_status(request: Request) -> StatusResponse:
    """Report that the server is up and how many rooms are open."""
    state = request.app.state
    return StatusResponse(
        status="running",
        message=state.config.relay.status_message,
        rooms=state.room_registry.room_count,
    )


@status_router.get("/status", response_model=DiagnosticsResponse)
async def read_diagnostics(request: Request) -> DiagnosticsResponse:
    """Report connections, rooms and the most recent liveness sweep."""
    state = request.app.state
    monitor = state.liveness_monitor
    last_report = monitor.last_report
    return DiagnosticsResponse(
        status="running",
        rooms=state.room_registry.room_count,
        connections=state.connection_manager.get_stats(),
        room_details=[RoomStatus(**room) for room in state.room_registry.describe()],
        liveness={
            "running": monitor.is_running,
            "probe_interval": monitor.probe_interval,
            "idle_timeout": monitor.idle_timeout,
            "sweeps": monitor.sweep_count,
            "last_sweep": last_report.to_dict() if last_report else None,
        },
    )
