"""
Real-time WebSocket endpoints.

Peers connect to `/` or `/ws`; both paths share one handler.
"""

from fastapi import APIRouter, WebSocket

from ..realtime.websocket_handler import handle_websocket_connection

realtime_router = APIRouter(tags=["realtime"])


@realtime_router.websocket("/")
@realtime_router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    """Serve one relay peer."""
    state = websocket.app.state
    await handle_websocket_connection(
        websocket,
        router=state.message_router,
        connection_manager=state.connection_manager,
        outbound_queue_size=state.config.relay.outbound_queue_size,
    )
