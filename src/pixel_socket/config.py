"""
PixelSocket Configuration
=========================

This module handles configuration loading for the PixelSocket client.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    PIXEL_SOCKET_URL                    -> client.url
    PIXEL_SOCKET_SAVE_DIRECTORY         -> client.save_directory ("" disables saving)
    PIXEL_SOCKET_AUTO_RECONNECT         -> client.auto_reconnect
    PIXEL_SOCKET_RECONNECT_DELAY        -> client.reconnect_delay
    PIXEL_SOCKET_MAX_RECONNECT_ATTEMPTS -> client.max_reconnect_attempts
    PIXEL_SOCKET_KEEPALIVE_INTERVAL     -> client.keepalive_interval
    PIXEL_SOCKET_PORT                   -> server.port
    PIXEL_SOCKET_LOG_LEVEL              -> logging.level
    PORT                                -> server.port (container platforms)

Example:
    from pixel_socket.config import load_config

    settings = load_config()
    print(settings.client.url)
    print(settings.client.save_directory)
"""

import os
import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field


logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Models
# =============================================================================

class ClientConfig(BaseModel):
    """Pixel Socket connection configuration."""

    model_config = ConfigDict(frozen=True)

    url: str = Field(
        default="ws://localhost:8080/ws",
        description="WebSocket URL of the Pixel Socket server",
    )
    save_directory: Optional[Path] = Field(
        default=Path("./received_images"),
        description="Directory for received images (None disables saving)",
    )
    auto_reconnect: bool = Field(
        default=True,
        description="Reconnect automatically when the connection drops",
    )
    reconnect_delay: float = Field(
        default=5.0,
        ge=0,
        description="Delay in seconds between reconnection attempts",
    )
    max_reconnect_attempts: int = Field(
        default=10,
        ge=0,
        description="Attempts at reconnect_delay before using the fallback delay",
    )
    fallback_reconnect_delay: float = Field(
        default=60.0,
        ge=0,
        description="Delay in seconds once max_reconnect_attempts is exceeded",
    )
    keepalive_interval: float = Field(
        default=20.0,
        gt=0,
        description="Seconds between application-level ping frames",
    )
    open_timeout: float = Field(
        default=10.0,
        gt=0,
        description="Timeout in seconds for the opening handshake",
    )
    close_timeout: float = Field(
        default=5.0,
        gt=0,
        description="Timeout in seconds for the closing handshake",
    )
    max_message_size: Optional[int] = Field(
        default=None,
        ge=1,
        description="Maximum inbound frame size in bytes (None = unlimited)",
    )


class ServerConfig(BaseModel):
    """Status server configuration."""

    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=8002, ge=1, le=65535, description="Bind port")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="json", description="Log format: json or text")


class Settings(BaseModel):
    """
    Main settings class for PixelSocket.

    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """

    client: ClientConfig = Field(default_factory=ClientConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# =============================================================================
# Configuration Loading
# =============================================================================

_CONFIG_SEARCH_PATHS = (
    Path("config.yaml"),
    Path("config.yml"),
    Path("/app/config.yaml"),
)


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


# (variable, section, field, parser). Later entries win, so PORT beats
# PIXEL_SOCKET_PORT.
_ENV_OVERRIDES = (
    ("PIXEL_SOCKET_URL", "client", "url", str),
    ("PIXEL_SOCKET_AUTO_RECONNECT", "client", "auto_reconnect", _parse_bool),
    ("PIXEL_SOCKET_RECONNECT_DELAY", "client", "reconnect_delay", float),
    ("PIXEL_SOCKET_MAX_RECONNECT_ATTEMPTS", "client", "max_reconnect_attempts", int),
    ("PIXEL_SOCKET_KEEPALIVE_INTERVAL", "client", "keepalive_interval", float),
    ("PIXEL_SOCKET_PORT", "server", "port", int),
    ("PORT", "server", "port", int),
    ("PIXEL_SOCKET_LOG_LEVEL", "logging", "level", str),
)

_JSON_LOG_FORMAT = (
    '{"time": "%(asctime)s", "level": "%(levelname)s", '
    '"module": "%(name)s", "message": "%(message)s"}'
)
_TEXT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def load_config(config_path: Optional[str] = None) -> Settings:
    """
    Build Settings from defaults, an optional YAML file, and the
    environment (in increasing order of precedence).

    Args:
        config_path: YAML file to read. If None, the first existing entry
            of config.yaml, config.yml, /app/config.yaml is used.

    Returns:
        Settings: Validated configuration
    """
    path = Path(config_path) if config_path else _find_config_file()

    config_data: dict = {}
    if path is not None and path.exists():
        logger.info(f"Reading settings from {path}")
        config_data = yaml.safe_load(path.read_text()) or {}
    else:
        logger.warning("No config file found; using defaults and environment")

    _apply_env_overrides(config_data)
    return Settings.model_validate(config_data)


def _find_config_file() -> Optional[Path]:
    return next((p for p in _CONFIG_SEARCH_PATHS if p.exists()), None)


def _apply_env_overrides(config_data: dict) -> None:
    """Overlay PIXEL_SOCKET_* (and PORT) variables onto raw config data."""
    for variable, section, field, parse in _ENV_OVERRIDES:
        value = os.environ.get(variable)
        if value:
            config_data.setdefault(section, {})[field] = parse(value)

    # Set-but-empty is meaningful here: it turns saving off
    save_directory = os.environ.get("PIXEL_SOCKET_SAVE_DIRECTORY")
    if save_directory is not None:
        config_data.setdefault("client", {})["save_directory"] = save_directory or None


def setup_logging(settings: Settings) -> None:
    """Configure root logging from settings.logging (json or text lines)."""
    json_format = settings.logging.format == "json"
    logging.basicConfig(
        level=getattr(logging, settings.logging.level.upper(), logging.INFO),
        format=_JSON_LOG_FORMAT if json_format else _TEXT_LOG_FORMAT,
        datefmt="%Y-%m-%dT%H:%M:%S",
    )
