"""Core module: config, types, logging."""

from src.core.config import Settings, get_settings, load_settings, reset_settings
from src.core.logging import setup_logging
from src.core.types import (
    BackendEventType,
    ConnectionState,
    Notification,
    NotificationCategory,
    RawServerEvent,
    StockData,
)

__all__ = [
    "BackendEventType",
    "ConnectionState",
    "Notification",
    "NotificationCategory",
    "RawServerEvent",
    "Settings",
    "StockData",
    "get_settings",
    "load_settings",
    "reset_settings",
    "setup_logging",
]
