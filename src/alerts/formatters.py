"""Pure functions that shape notifications for the UI."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from src.alerts.feed import NotificationFeed
from src.core.types import Notification, NotificationCategory, StockData

# ── Labels ──────────────────────────────────────────────────────

_TITLES: dict[str, str] = {
    NotificationCategory.CRITICAL: "Alerta Crítica",
    NotificationCategory.PREVENTIVE: "Alerta Preventiva",
}
DEFAULT_TITLE = "Notificación"

BADGE_CAP = 9


def category_title(category: str) -> str:
    return _TITLES.get(category, DEFAULT_TITLE)


def badge_label(unread: int) -> str:
    """Text for the bell badge: empty at zero, capped as ``9+``."""
    if unread <= 0:
        return ""
    if unread > BADGE_CAP:
        return f"{BADGE_CAP}+"
    return str(unread)


def badge_variant(feed: NotificationFeed) -> str:
    """``destructive`` while any critical alert is unread, else ``secondary``."""
    if feed.has_unread_of_category(NotificationCategory.CRITICAL):
        return "destructive"
    return "secondary"


# ── Stock level ─────────────────────────────────────────────────


def stock_percentage(data: StockData) -> float:
    """Current stock as a share of the maximum, clamped to 0–100.

    A non-positive maximum falls back to 100 as the denominator.
    """
    denominator = data.max_stock if data.max_stock > 0 else 100.0
    return max(0.0, min(100.0, data.current_stock / denominator * 100.0))


def stock_level(data: StockData) -> str:
    if data.current_stock <= data.min_stock:
        return "critical"
    if data.current_stock <= data.min_stock * 1.5:
        return "low"
    return "ok"


# ── Rows ────────────────────────────────────────────────────────


def format_received_at(epoch: float) -> str:
    """Local receipt time as shown in the detail view (``dd/mm/yyyy hh:mm``)."""
    return datetime.fromtimestamp(epoch).strftime("%d/%m/%Y %H:%M")


def describe_notification(notification: Notification) -> dict[str, Any]:
    """Flatten a notification into a list-row / detail payload."""
    data = notification.data
    return {
        "id": notification.id,
        "category": notification.category,
        "title": category_title(notification.category),
        "message": notification.message,
        "read": notification.read,
        "received_at": notification.received_at,
        "received_at_display": format_received_at(notification.received_at),
        "product": {
            "code": data.code or "N/A",
            "description": data.description or "Producto",
            "lot": data.lot or "N/A",
        },
        "stock": {
            "current": data.current_stock,
            "previous": data.previous_stock,
            "min": data.min_stock,
            "max": data.max_stock,
            "percentage": round(stock_percentage(data), 1),
            "level": stock_level(data),
        },
        "server_timestamp": data.timestamp,
    }


def feed_summary(feed: NotificationFeed) -> dict[str, Any]:
    unread = feed.unread_count()
    return {
        "total": len(feed),
        "unread_count": unread,
        "badge": badge_label(unread),
        "badge_variant": badge_variant(feed),
        "urgent": feed.has_unread_of_category(NotificationCategory.CRITICAL),
    }
