"""Stock-alert notifications: classification, dedup, feed and API."""

from src.alerts.api import create_api_app, start_api
from src.alerts.classifier import NotificationClassifier, derive_message, new_notification_id
from src.alerts.dedup import DEFAULT_WINDOW_SECS, Deduplicator, dedup_key
from src.alerts.factory import AlertStack, create_alert_stack
from src.alerts.feed import NotificationFeed
from src.alerts.formatters import (
    badge_label,
    badge_variant,
    category_title,
    describe_notification,
    feed_summary,
    format_received_at,
    stock_level,
    stock_percentage,
)

__all__ = [
    "DEFAULT_WINDOW_SECS",
    "AlertStack",
    "Deduplicator",
    "NotificationClassifier",
    "NotificationFeed",
    "badge_label",
    "badge_variant",
    "category_title",
    "create_alert_stack",
    "create_api_app",
    "dedup_key",
    "derive_message",
    "describe_notification",
    "feed_summary",
    "format_received_at",
    "new_notification_id",
    "start_api",
    "stock_level",
    "stock_percentage",
]
