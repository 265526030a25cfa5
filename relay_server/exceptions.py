"""
Exception hierarchy for the pairing relay server.

Every error raised by relay code derives from RelayError, which carries
structured context for logging and a user-friendly message that is safe to
send back over the wire.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .error_types import ErrorType
from .logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class ErrorContext:
    """
    Contextual information for error handling.

    Provides structured context for error reporting and debugging.
    """

    connection_id: str | None = None
    room_id: str | None = None
    role: str | None = None
    message_type: str | None = None
    timestamp: datetime = field(default_factory=datetime.now)
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert context to dictionary for logging."""
        return {
            "connection_id": self.connection_id,
            "room_id": self.room_id,
            "role": self.role,
            "message_type": self.message_type,
            "timestamp": self.timestamp.isoformat(),
            "metadata": self.metadata,
        }


class RelayError(Exception):
    """
    Base exception for all relay server errors.

    Provides structured error handling with context and metadata
    for proper error categorization and debugging.
    """

    log_level = "error"

    def __init__(
        self,
        message: str,
        context: ErrorContext | None = None,
        details: dict[str, Any] | None = None,
        user_friendly: str | None = None,
    ):
        """
        Initialize relay error.

        Args:
            message: Technical error message
            context: Error context information
            details: Additional error details
            user_friendly: User-friendly error message
        """
        super().__init__(message)
        self.message = message
        self.context = context or ErrorContext()
        self.details = details or {}
        self.user_friendly = user_friendly or message
        self.timestamp = datetime.now()

        self._log_error()

    def _log_error(self) -> None:
        """Log the error with structured context."""
        log = getattr(logger, self.log_level)
        log(
            "Relay error occurred",
            error_type=self.__class__.__name__,
            message=self.message,
            context=self.context.to_dict(),
            details=self.details,
        )


class ProtocolError(RelayError):
    """
    A frame that cannot be accepted: bad JSON, wrong shape, invalid join fields.

    Reported to the offending connection; the connection stays open.
    """

    log_level = "warning"

    def __init__(self, message: str, context: ErrorContext | None = None, reason: str = "invalid_format", **kwargs):
        super().__init__(message, context, **kwargs)
        self.reason = reason
        self.details["reason"] = reason


class ConfigurationError(RelayError):
    """Configuration errors."""

    def __init__(self, message: str, context: ErrorContext | None = None, config_key: str | None = None, **kwargs):
        super().__init__(message, context, **kwargs)
        self.details["error_type"] = ErrorType.CONFIGURATION_ERROR.value
        self.config_key = config_key
        if config_key:
            self.details["config_key"] = config_key
