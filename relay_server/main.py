"""
Pairing relay server - main application entry point.

Run with `python -m relay_server`, or point uvicorn at `relay_server.main:app`.
Uvicorn turns SIGTERM/SIGINT into a lifespan shutdown, which closes every
connection before the process exits. Uvicorn also sends WebSocket protocol
pings and drops transports that stop answering them.
"""

import uvicorn

from .app.factory import create_app
from .config import get_config
from .logging_config import get_logger, setup_logging

# Logging must be configured before the first log line of the app factory
config = get_config()
setup_logging(config.to_legacy_dict())

logger = get_logger(__name__)

app = create_app(config)


def main() -> None:
    """Start the server with uvicorn on the configured address."""
    logger.info("Pairing relay server starting", host=config.server.host, port=config.server.port)
    uvicorn.run(
        app,
        host=config.server.host,
        port=config.server.port,
        ws_ping_interval=config.liveness.transport_ping_interval,
        ws_ping_timeout=config.liveness.transport_ping_timeout,
        access_log=True,
        use_colors=False,
        log_config=None,
    )


if __name__ == "__main__":
    main()
