"""Application lifecycle management for the pairing relay server.

Startup launches the liveness monitor; shutdown stops it and closes every
open connection before the process exits.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from ..logging_config import get_logger

logger = get_logger("relay_server.lifespan")

SHUTDOWN_CLOSE_CODE = 1001


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    The relay components are created by create_app() and live on app.state;
    this only starts and stops the background work around them.
    """
    config = app.state.config
    monitor = app.state.liveness_monitor

    logger.info("Starting pairing relay server", host=config.server.host, port=config.server.port)
    if config.liveness.enabled:
        monitor.start()
    else:
        logger.warning("Liveness monitor disabled by configuration")

    try:
        yield
    finally:
        logger.info("Shutting down pairing relay server")
        await monitor.stop()
        await app.state.connection_manager.close_all(code=SHUTDOWN_CLOSE_CODE, reason="server shutting down")
        logger.info(
            "Pairing relay server stopped",
            rooms=app.state.room_registry.room_count,
            total_connections=app.state.connection_manager.total_connections,
        )
