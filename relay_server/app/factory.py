"""
FastAPI application factory for the pairing relay server.

This module builds the relay components, wires them onto app.state and
registers the HTTP and WebSocket routers.
"""

import time

from fastapi import FastAPI

from .. import __version__
from ..api.real_time import realtime_router
from ..api.status import status_router
from ..config import AppConfig, get_config
from ..logging_config import get_logger
from ..realtime.connection_manager import ConnectionManager
from ..realtime.monitoring import LivenessMonitor
from ..realtime.room_registry import RoomRegistry
from ..realtime.router import MessageRouter
from .lifespan import lifespan

logger = get_logger(__name__)


def create_app(config: AppConfig | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        config: Application configuration (loaded from the environment if None)

    Returns:
        FastAPI: The configured application instance
    """
    config = config or get_config()

    app = FastAPI(
        title="Pairing Relay Server",
        description="Pairs one sensor and one monitor per room and relays frames between them",
        version=__version__,
        lifespan=lifespan,
    )

    registry = RoomRegistry()
    connection_manager = ConnectionManager()
    message_router = MessageRouter(registry, max_message_size=config.relay.max_message_size)
    liveness_monitor = LivenessMonitor(
        connection_manager,
        message_router,
        registry,
        probe_interval=config.liveness.probe_interval,
        idle_timeout=config.liveness.idle_timeout,
        clock=time.monotonic,
    )

    app.state.config = config
    app.state.room_registry = registry
    app.state.connection_manager = connection_manager
    app.state.message_router = message_router
    app.state.liveness_monitor = liveness_monitor

    app.include_router(status_router)
    app.include_router(realtime_router)

    logger.info(
        "Application created",
        probe_interval=config.liveness.probe_interval,
        idle_timeout=config.liveness.idle_timeout,
        max_message_size=config.relay.max_message_size,
    )
    return app
