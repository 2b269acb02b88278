"""Pydantic settings loaded from YAML configuration."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, SecretStr

_settings: Settings | None = None

_DEFAULT_CONFIG_PATH = Path("config/settings.yaml")

# Environment variables that override values from the YAML file.
_ENV_WS_URL = "STOCK_ALERTS_WS_URL"
_ENV_API_USER = "STOCK_ALERTS_API_USER"
_ENV_API_PASS = "STOCK_ALERTS_API_PASS"


class StreamConfig(BaseModel):
    """Backend event-stream (STOMP over WebSocket) configuration."""

    ws_url: str = ""
    host: str = "/"
    login: str = ""
    passcode: SecretStr = SecretStr("")
    topics: dict[str, str] = {
        "critical": "/topic/stock/critico",
        "preventive": "/topic/stock/preventivo",
    }
    heartbeat_outgoing_ms: int = 4000
    heartbeat_incoming_ms: int = 4000
    reconnect_base_secs: float = 1.0
    reconnect_cap_secs: float = 30.0


class AlertsConfig(BaseModel):
    """Notification classification and feed configuration."""

    dedup_window_secs: float = 10.0
    max_notifications: int | None = None


class ApiConfig(BaseModel):
    """Notification JSON API configuration."""

    enabled: bool = True
    host: str = "0.0.0.0"
    port: int = 8080
    username: str = ""
    password: SecretStr = SecretStr("")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "json"


class Settings(BaseModel):
    """Root settings container."""

    stream: StreamConfig = StreamConfig()
    alerts: AlertsConfig = AlertsConfig()
    api: ApiConfig = ApiConfig()
    logging: LoggingConfig = LoggingConfig()


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Overlay environment-supplied values on the raw YAML mapping."""
    ws_url = os.environ.get(_ENV_WS_URL)
    if ws_url:
        data.setdefault("stream", {})["ws_url"] = ws_url

    api_user = os.environ.get(_ENV_API_USER)
    api_pass = os.environ.get(_ENV_API_PASS)
    if api_user:
        data.setdefault("api", {})["username"] = api_user
    if api_pass:
        data.setdefault("api", {})["password"] = api_pass
    return data


def load_settings(path: str | Path | None = None) -> Settings:
    """Load settings from a YAML file and cache globally.

    Environment variables (``STOCK_ALERTS_WS_URL``, ``STOCK_ALERTS_API_USER``,
    ``STOCK_ALERTS_API_PASS``) take precedence over the file.

    Args:
        path: Path to YAML config. Defaults to config/settings.yaml.

    Returns:
        Parsed Settings instance.
    """
    global _settings  # noqa: PLW0603

    config_path = Path(path) if path else _DEFAULT_CONFIG_PATH

    data: dict[str, Any] = {}
    if config_path.exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f)
            if isinstance(raw, dict):
                data = raw

    _settings = Settings(**_apply_env_overrides(data))
    return _settings


def get_settings() -> Settings:
    """Return the cached settings, loading defaults if not yet loaded."""
    global _settings  # noqa: PLW0603
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Reset the cached settings (useful for testing)."""
    global _settings  # noqa: PLW0603
    _settings = None
