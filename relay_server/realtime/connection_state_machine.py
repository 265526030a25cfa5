"""
Connection lifecycle state machine for relay peers.

Each WebSocket peer moves through an explicit lifecycle so that join, leave,
displacement and eviction can only happen from states where they make sense.
"""

from typing import Any

from statemachine import State, StateMachine

from ..logging_config import get_logger

logger = get_logger(__name__)


class ConnectionLifecycle(StateMachine):
    """
    State machine for one relay connection.

    States:
    - connecting: transport accepted, no room joined yet
    - attached: occupies a room slot
    - detached: left its room (or was displaced) but the transport is open
    - closed: transport gone, terminal

    Transitions:
    - connecting / detached -> attached: attach
    - attached -> attached: attach (re-join, possibly another room or role)
    - attached -> detached: detach
    - any non-terminal -> closed: disconnect
    """

    connecting = State("Connecting", initial=True)
    attached = State("Attached")
    detached = State("Detached")
    closed = State("Closed", final=True)

    attach = connecting.to(attached) | detached.to(attached) | attached.to.itself()
    detach = attached.to(detached)
    disconnect = connecting.to(closed) | attached.to(closed) | detached.to(closed)

    def __init__(self, connection_id: str):
        """
        Initialize the lifecycle.

        Args:
            connection_id: Unique identifier for the connection
        """
        # Set before super().__init__() because on_enter_state runs for the initial state
        self.connection_id = connection_id
        self.attach_count = 0
        super().__init__()

    def on_enter_state(self, state: State, event: Any = None) -> None:
        """Log every transition at debug level."""
        logger.debug(
            "Connection state transition",
            connection_id=self.connection_id,
            trigger_event=str(event) if event else "initial",
            to_state=state.id,
        )

    def on_attach(self) -> None:
        self.attach_count += 1

    @property
    def is_closed(self) -> bool:
        return self.closed.is_active

    def get_stats(self) -> dict[str, Any]:
        """Lifecycle snapshot for diagnostics."""
        return {
            "connection_id": self.connection_id,
            "current_state": self.current_state.id,
            "attach_count": self.attach_count,
        }
