"""
WebSocket handler for relay peers.

One call of handle_websocket_connection serves one peer from accept to
close. Frames from that peer are processed strictly in arrival order.
"""

import asyncio

from fastapi import WebSocket, WebSocketDisconnect

from ..logging_config import get_logger
from .connection_manager import ConnectionManager
from .relay_connection import RelayConnection
from .router import MessageRouter

logger = get_logger(__name__)


async def handle_websocket_connection(
    websocket: WebSocket,
    router: MessageRouter,
    connection_manager: ConnectionManager,
    outbound_queue_size: int = 256,
) -> None:
    """
    Accept a WebSocket and run its receive loop until the peer goes away.

    Args:
        websocket: The incoming WebSocket
        router: Message router shared by all connections
        connection_manager: Registry of open connections
        outbound_queue_size: Frames buffered for this peer before dropping
    """
    await websocket.accept()
    connection = RelayConnection(websocket, outbound_queue_size=outbound_queue_size)
    client = websocket.client
    logger.info(
        "New WebSocket connection",
        connection_id=connection.connection_id,
        remote=f"{client.host}:{client.port}" if client else None,
    )

    connection_manager.register(connection)
    connection.start()
    try:
        while connection.is_open:
            frame = await websocket.receive()
            if frame["type"] == "websocket.disconnect":
                logger.info(
                    "WebSocket closed by peer",
                    connection_id=connection.connection_id,
                    code=frame.get("code"),
                )
                break
            if not connection.is_open:
                break
            if frame.get("text") is not None:
                await router.handle_text_frame(connection, frame["text"])
            elif frame.get("bytes") is not None:
                await router.handle_binary_frame(connection, frame["bytes"])
    except WebSocketDisconnect as e:
        logger.info("WebSocket disconnected", connection_id=connection.connection_id, code=e.code)
    except RuntimeError as e:
        # Starlette raises RuntimeError when receiving on a socket we already closed
        logger.debug("WebSocket receive stopped", connection_id=connection.connection_id, error=str(e))
    except Exception as e:  # pylint: disable=broad-except  # Reason: one peer's failure must not reach the server
        logger.error("WebSocket error", connection_id=connection.connection_id, error=str(e), exc_info=True)
    finally:
        try:
            # Leave handling completes even if this task is being cancelled
            await asyncio.shield(router.handle_disconnect(connection))
        finally:
            connection_manager.unregister(connection)
            await connection.shutdown()
            logger.info("Connection finished", connection_id=connection.connection_id)
