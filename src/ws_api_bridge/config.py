"""Configuration management for the WS API Bridge.

This module provides centralized configuration with support for:
- Keyword arguments supplied by the host runtime (primary)
- Environment variables
- Type validation via Pydantic
- Host-style camelCase mappings via BridgeConfig.from_host

Environment Variables:
    WS_BRIDGE_SERVER_ADDRESS: host:port of the remote WebSocket server (required)
    WS_BRIDGE_KEY_PREFIX: Namespace prefix for frame keys (default: empty)
    WS_BRIDGE_VERBOSE: Log frame-level details (default: false)
    WS_BRIDGE_RETRY_DELAY_MS: Delay before reconnecting (default: 3000)
    WS_BRIDGE_LOG_LEVEL: Logging level (default: INFO)

Usage:
    from ws_api_bridge.config import BridgeConfig, get_config

    # Load from the environment
    config = get_config()

    # Or from a host plugin configuration
    config = BridgeConfig.from_host({"serverAddress": "localhost:8080"})
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ws_api_bridge.protocol import DEFAULT_RETRY_DELAY_MS

# Host runtimes pass camelCase keys; serverUrl/websocketPrefix are the
# plugin's own setting names
_HOST_KEY_ALIASES: dict[str, str] = {
    "serverAddress": "server_address",
    "serverUrl": "server_address",
    "keyPrefix": "key_prefix",
    "websocketPrefix": "key_prefix",
    "retryDelayMs": "retry_delay_ms",
    "logLevel": "log_level",
}


class BridgeConfig(BaseSettings):
    """Bridge configuration with environment variable support.

    Immutable once constructed. All settings can be overridden via environment
    variables prefixed with WS_BRIDGE_, e.g. WS_BRIDGE_KEY_PREFIX=app: sets
    key_prefix to "app:". Keyword arguments take precedence over the
    environment.

    Attributes:
        server_address: host:port of the remote WebSocket server
        key_prefix: Prefix every inbound key must start with and every
            outbound key is given
        verbose: Log frame-level details at DEBUG
        retry_delay_ms: Fixed delay before each reconnect attempt
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    model_config = SettingsConfigDict(
        env_prefix="WS_BRIDGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    server_address: str = Field(
        description="host:port of the remote WebSocket server",
    )
    key_prefix: str = Field(
        default="",
        description="Namespace prefix for frame keys",
    )
    verbose: bool = Field(
        default=False,
        description="Log frame-level details",
    )
    retry_delay_ms: int = Field(
        default=DEFAULT_RETRY_DELAY_MS,
        ge=0,
        description="Delay before reconnecting after a close or error (milliseconds)",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    @field_validator("server_address")
    @classmethod
    def validate_server_address(cls, v: str) -> str:
        """Require a bare host:port address; the ws:// scheme is added later."""
        v = v.strip()
        if not v:
            raise ValueError("server_address must not be empty")
        if "://" in v:
            raise ValueError(
                "server_address must be host:port without a scheme, "
                f"got {v!r}"
            )
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: Any) -> Any:
        """Normalize log level to uppercase."""
        if isinstance(v, str):
            return v.upper()
        return v

    @classmethod
    def from_host(cls, config: BridgeConfig | Mapping[str, Any]) -> BridgeConfig:
        """Build a config from a host plugin configuration.

        Accepts either an existing BridgeConfig (returned as-is) or a mapping
        with camelCase (serverAddress or serverUrl, keyPrefix or websocketPrefix,
        ...) or snake_case keys.
        Keys set to None fall back to their defaults.

        Args:
            config: The host-supplied configuration

        Returns:
            The validated BridgeConfig
        """
        if isinstance(config, cls):
            return config
        kwargs = {
            _HOST_KEY_ALIASES.get(key, key): value
            for key, value in config.items()
            if value is not None
        }
        return cls(**kwargs)

    @property
    def retry_delay(self) -> float:
        """Reconnect delay in seconds."""
        return self.retry_delay_ms / 1000.0

    def setup_logging(self) -> None:
        """Configure logging based on config settings.

        verbose forces DEBUG regardless of log_level.
        """
        level = logging.DEBUG if self.verbose else getattr(logging, self.log_level, logging.INFO)
        logging.basicConfig(
            level=level,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )
        logging.getLogger().setLevel(level)

    def to_dict(self) -> dict[str, Any]:
        """Convert config to dictionary for logging/debugging.

        Returns:
            Dictionary of all config values
        """
        return {
            "server_address": self.server_address,
            "key_prefix": self.key_prefix,
            "verbose": self.verbose,
            "retry_delay_ms": self.retry_delay_ms,
            "log_level": self.log_level,
        }


# Module-level singleton instance
_config_instance: BridgeConfig | None = None


def get_config() -> BridgeConfig:
    """Get the singleton configuration instance.

    Creates the config on first call from environment variables and the
    optional .env file, caching it for subsequent calls.

    Returns:
        The BridgeConfig singleton instance

    Raises:
        pydantic.ValidationError: If WS_BRIDGE_SERVER_ADDRESS is not set or
            a value is invalid
    """
    global _config_instance
    if _config_instance is None:
        _config_instance = BridgeConfig()  # type: ignore[call-arg]
    return _config_instance


def set_config(config: BridgeConfig) -> None:
    """Set the configuration instance (primarily for testing).

    Args:
        config: BridgeConfig instance to use as the singleton
    """
    global _config_instance
    _config_instance = config


def reset_config() -> None:
    """Reset the configuration singleton.

    Forces the next get_config() call to reload from environment.
    """
    global _config_instance
    _config_instance = None
