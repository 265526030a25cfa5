"""
Pydantic-based configuration models for the pairing relay server.

Every setting is read from the environment (and an optional .env file)
through pydantic-settings, validated once at startup.
"""

from typing import Any

from pydantic import AliasChoices, Field, field_validator, model_validator
from pydantic_settings import BaseSettings

from ..logging_config import detect_environment, get_logger

logger = get_logger(__name__)


class ServerConfig(BaseSettings):
    """Server network configuration."""

    host: str = Field(default="0.0.0.0", description="Server bind address")
    port: int = Field(
        default=10000,
        validation_alias=AliasChoices("SERVER_PORT", "PORT"),
        description="Server port",
    )

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate port is in valid range."""
        if not 1 <= v <= 65535:
            logger.error("Invalid server port", port=v, valid_range="1-65535")
            raise ValueError("Port must be between 1 and 65535")
        return v

    model_config = {"env_prefix": "SERVER_", "case_sensitive": False, "extra": "ignore", "populate_by_name": True}


class LivenessConfig(BaseSettings):
    """Heartbeat and zombie eviction configuration."""

    enabled: bool = Field(default=True, description="Run the periodic liveness sweep")
    probe_interval: float = Field(default=30.0, description="Seconds between liveness sweeps")
    idle_timeout: float = Field(default=60.0, description="Seconds without inbound frames before eviction")
    transport_ping_interval: float | None = Field(
        default=20.0, description="Seconds between WebSocket protocol pings sent by uvicorn (None disables)"
    )
    transport_ping_timeout: float | None = Field(
        default=20.0, description="Seconds uvicorn waits for a protocol pong before closing the transport"
    )

    @field_validator("probe_interval", "idle_timeout")
    @classmethod
    def validate_positive(cls, v: float) -> float:
        """Intervals must be positive."""
        if v <= 0:
            raise ValueError("Liveness intervals must be greater than zero")
        return v

    @model_validator(mode="after")
    def validate_idle_timeout(self) -> "LivenessConfig":
        """An idle timeout shorter than the probe period would evict healthy peers."""
        if self.idle_timeout < self.probe_interval:
            raise ValueError("idle_timeout must be greater than or equal to probe_interval")
        return self

    model_config = {"env_prefix": "LIVENESS_", "case_sensitive": False, "extra": "ignore"}


class RelayConfig(BaseSettings):
    """Relay behaviour and status reporting."""

    max_message_size: int = Field(default=1024 * 1024, description="Largest accepted inbound frame in bytes")
    outbound_queue_size: int = Field(default=256, description="Frames buffered per connection before dropping")
    status_message: str = Field(default="Pairing relay server is running", description="Text on the status page")

    @field_validator("max_message_size", "outbound_queue_size")
    @classmethod
    def validate_sizes(cls, v: int) -> int:
        """Size limits must be at least 1."""
        if v < 1:
            raise ValueError("Size limits must be at least 1")
        return v

    model_config = {"env_prefix": "RELAY_", "case_sensitive": False, "extra": "ignore"}


class LoggingConfig(BaseSettings):
    """Logging configuration."""

    environment: str = Field(default_factory=detect_environment, description="Logging environment")
    level: str = Field(default="INFO", description="Log level")
    log_base: str = Field(default="logs", description="Base log directory")
    rotation_max_size: str = Field(default="10MB", description="Log rotation max size")
    rotation_backup_count: int = Field(default=5, description="Number of backup log files")
    disable_logging: bool = Field(default=False, description="Disable file logging")

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level is one the stdlib understands."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        level = v.upper()
        if level not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}")
        return level

    model_config = {"env_prefix": "LOGGING_", "case_sensitive": False, "extra": "ignore"}

    def to_legacy_dict(self) -> dict[str, Any]:
        """Return the dict structure expected by logging_config.setup_logging."""
        return {
            "environment": self.environment,
            "level": self.level,
            "log_base": self.log_base,
            "rotation": {
                "max_size": self.rotation_max_size,
                "backup_count": self.rotation_backup_count,
            },
            "disable_logging": self.disable_logging,
        }


class AppConfig(BaseSettings):
    """
    Composite application configuration.

    Aggregates all other configs. Access via get_config().
    """

    server: ServerConfig = Field(default_factory=ServerConfig)
    liveness: LivenessConfig = Field(default_factory=LivenessConfig)
    relay: RelayConfig = Field(default_factory=RelayConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "case_sensitive": False, "extra": "ignore"}

    def to_legacy_dict(self) -> dict[str, Any]:
        """Convert to the dict format consumed by logging setup."""
        return {
            "host": self.server.host,
            "port": self.server.port,
            "logging": self.logging.to_legacy_dict(),
        }
