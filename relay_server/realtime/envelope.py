"""
Wire envelope for relay messages.

Every text frame is a JSON object with a `type` discriminator. Inbound frames
are decoded into a closed set of pydantic models; outbound frames are plain
dicts built by the helpers at the bottom of this module.

Inbound:  join {room, mode} | audio {data} | leave | ping {timestamp} | pong {timestamp}
Outbound: room_info {room, peers} | peer_joined {mode} | peer_left {mode} |
          audio {data} | pong {timestamp} | ping {timestamp} | error {message}
"""

from __future__ import annotations

import json
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from ..error_types import ErrorMessages, ErrorType, create_websocket_error_response
from ..exceptions import ErrorContext, ProtocolError
from ..logging_config import get_logger
from .connection_models import Role

logger = get_logger(__name__)


class _Inbound(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class JoinMessage(_Inbound):
    type: Literal["join"]
    room: str = Field(min_length=1)
    mode: Role


class AudioMessage(_Inbound):
    type: Literal["audio"]
    data: Any = None


class LeaveMessage(_Inbound):
    type: Literal["leave"]


class PingMessage(_Inbound):
    """Client-initiated round trip; echoed back as `pong`."""

    type: Literal["ping"]
    timestamp: Any = None


class PongMessage(_Inbound):
    """Response to the server's liveness probe."""

    type: Literal["pong"]
    timestamp: Any = None


InboundMessage = Annotated[
    Union[JoinMessage, AudioMessage, LeaveMessage, PingMessage, PongMessage],
    Field(discriminator="type"),
]

_inbound_adapter: TypeAdapter[InboundMessage] = TypeAdapter(InboundMessage)

INBOUND_TYPES = frozenset({"join", "audio", "leave", "ping", "pong"})


def parse_inbound_message(
    raw: str,
    max_message_size: int | None = None,
    context: ErrorContext | None = None,
) -> InboundMessage | None:
    """
    Decode one text frame.

    Args:
        raw: The frame text
        max_message_size: Optional limit in bytes
        context: Connection context attached to any ProtocolError raised

    Returns:
        The decoded message, or None for a well-formed object whose type is
        not one the relay handles (such frames are ignored)

    Raises:
        ProtocolError: If the frame is not a JSON object, is too large, has a
            non-string type, or is a join with missing or invalid fields
    """
    context = context or ErrorContext()

    if max_message_size is not None and len(raw.encode("utf-8")) > max_message_size:
        raise ProtocolError(
            f"Frame exceeds {max_message_size} bytes",
            context=context,
            reason=ErrorType.MESSAGE_TOO_LARGE.value,
            user_friendly=ErrorMessages.MESSAGE_TOO_LARGE,
        )

    try:
        payload = json.loads(raw)
    except (json.JSONDecodeError, TypeError) as e:
        raise ProtocolError(
            f"Frame is not valid JSON: {e}",
            context=context,
            reason=ErrorType.INVALID_FORMAT.value,
            user_friendly=ErrorMessages.INVALID_FORMAT,
        ) from e

    if not isinstance(payload, dict):
        raise ProtocolError(
            "Frame is not a JSON object",
            context=context,
            reason=ErrorType.INVALID_FORMAT.value,
            user_friendly=ErrorMessages.INVALID_FORMAT,
        )

    message_type = payload.get("type")
    if message_type is None:
        logger.debug("Ignoring frame without type", connection_id=context.connection_id)
        return None
    if not isinstance(message_type, str):
        raise ProtocolError(
            f"Frame type must be a string, got {type(message_type).__name__}",
            context=context,
            reason=ErrorType.INVALID_FORMAT.value,
            user_friendly=ErrorMessages.INVALID_FORMAT,
        )

    context.message_type = message_type
    if message_type not in INBOUND_TYPES:
        logger.debug(
            "Ignoring frame with unknown type",
            connection_id=context.connection_id,
            message_type=message_type[:64],
        )
        return None

    if message_type == "join" and (not payload.get("room") or not payload.get("mode")):
        raise ProtocolError(
            "Join without room or mode",
            context=context,
            reason=ErrorType.MISSING_REQUIRED_FIELD.value,
            user_friendly=ErrorMessages.ROOM_AND_MODE_REQUIRED,
        )

    try:
        return _inbound_adapter.validate_python(payload)
    except ValidationError as e:
        invalid_fields = {str(err["loc"][1]) for err in e.errors() if len(err["loc"]) > 1}
        if "mode" in invalid_fields:
            raise ProtocolError(
                f"Invalid mode: {payload.get('mode')!r}",
                context=context,
                reason=ErrorType.INVALID_ROLE.value,
                user_friendly=ErrorMessages.INVALID_MODE,
            ) from e
        raise ProtocolError(
            f"Invalid {message_type} frame: {e.error_count()} validation errors",
            context=context,
            reason=ErrorType.INVALID_FORMAT.value,
            user_friendly=ErrorMessages.INVALID_FORMAT,
        ) from e


def build_room_info(room_id: str, peers: int) -> dict[str, Any]:
    return {"type": "room_info", "room": room_id, "peers": peers}


def build_peer_joined(role: Role) -> dict[str, Any]:
    return {"type": "peer_joined", "mode": role.value}


def build_peer_left(role: Role) -> dict[str, Any]:
    return {"type": "peer_left", "mode": role.value}


def build_audio(data: Any) -> dict[str, Any]:
    return {"type": "audio", "data": data}


def build_pong(timestamp: Any) -> dict[str, Any]:
    return {"type": "pong", "timestamp": timestamp}


def build_probe(timestamp: Any) -> dict[str, Any]:
    """Server-initiated liveness probe."""
    return {"type": "ping", "timestamp": timestamp}


def build_error(message: str) -> dict[str, Any]:
    return create_websocket_error_response(message)
