"""
Centralized error types and constants for the pairing relay server.

This module defines standardized error types and the user-facing messages
sent in `error` frames, so every layer reports the same wording.
"""

from enum import Enum
from typing import Any


class ErrorType(Enum):
    """Standardized error types for consistent categorization."""

    # Validation Errors
    INVALID_FORMAT = "invalid_format"
    MISSING_REQUIRED_FIELD = "missing_required_field"
    INVALID_ROLE = "invalid_role"
    MESSAGE_TOO_LARGE = "message_too_large"

    # Real-time Communication
    MESSAGE_PROCESSING_ERROR = "message_processing_error"

    # System
    CONFIGURATION_ERROR = "configuration_error"


class ErrorMessages:
    """Common error messages for consistent user experience."""

    INVALID_FORMAT = "Invalid message format"
    ROOM_AND_MODE_REQUIRED = "Room code and mode are required"
    INVALID_MODE = "Invalid mode"
    MESSAGE_TOO_LARGE = "Message too large"
    MESSAGE_PROCESSING_ERROR = "Error processing message"


def create_websocket_error_response(message: str) -> dict[str, Any]:
    """
    Create the `error` frame sent to a client.

    Args:
        message: User-facing error message

    Returns:
        WebSocket error response dictionary
    """
    return {"type": "error", "message": message}
