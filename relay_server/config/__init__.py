"""
Configuration module for the pairing relay server.

Usage:
    from relay_server.config import get_config

    config = get_config()
    logger.info("Configuration loaded", host=config.server.host, port=config.server.port)
"""

import sys
import threading
from os import getenv

from pydantic import ValidationError

from ..exceptions import ConfigurationError
from .models import AppConfig, LivenessConfig, LoggingConfig, RelayConfig, ServerConfig

__all__ = ["get_config", "reset_config", "AppConfig", "LivenessConfig", "LoggingConfig", "RelayConfig", "ServerConfig"]

_config_instance: AppConfig | None = None
_config_lock = threading.Lock()


def _is_test_mode() -> bool:
    """Detect pytest so every test sees the environment it patched."""
    return "pytest" in sys.modules or bool(getenv("PYTEST_CURRENT_TEST"))


def get_config() -> AppConfig:
    """
    Get application configuration (singleton in production, fresh in tests).

    Returns:
        AppConfig: The application configuration

    Raises:
        ConfigurationError: If configuration is invalid
    """
    global _config_instance  # pylint: disable=global-statement
    if _is_test_mode():
        return _load_config()
    with _config_lock:
        if _config_instance is None:
            _config_instance = _load_config()
        return _config_instance


def _load_config() -> AppConfig:
    try:
        return AppConfig()
    except ValidationError as e:
        first = e.errors()[0]
        config_key = ".".join(str(part) for part in first["loc"]) or None
        raise ConfigurationError(
            f"Invalid configuration: {first['msg']}",
            config_key=config_key,
            details={"errors": e.error_count()},
        ) from e


def reset_config() -> None:
    """Drop the cached configuration so the next get_config() re-reads the environment."""
    global _config_instance  # pylint: disable=global-statement
    with _config_lock:
        _config_instance = None
