"""Turns raw stream events into deduplicated feed notifications."""

from __future__ import annotations

import secrets
import time
from collections.abc import Iterable
from typing import Any

import structlog

from src.alerts.dedup import Deduplicator, dedup_key
from src.alerts.feed import NotificationFeed
from src.core.types import (
    BackendEventType,
    Notification,
    NotificationCategory,
    RawServerEvent,
    StockData,
)
from src.stream.client import AlertStreamClient

logger = structlog.stdlib.get_logger()

DEFAULT_MESSAGE = "Nueva notificación"

_TYPED_MESSAGES: dict[str, str] = {
    BackendEventType.PRODUCT_DEPLETED: "Producto agotado: {description} ({code})",
    BackendEventType.LOW_STOCK: "Stock bajo: {description} ({code})",
}


def derive_message(event: RawServerEvent, data: StockData) -> str:
    """Human-readable summary; typed backend events get a templated text."""
    template = _TYPED_MESSAGES.get(event.event_type or "")
    if template is not None:
        return template.format(description=data.description, code=data.code)
    return event.message or DEFAULT_MESSAGE


def new_notification_id(now: float | None = None) -> str:
    """Epoch milliseconds plus a random suffix."""
    millis = int((now if now is not None else time.time()) * 1000)
    return f"{millis}-{secrets.token_hex(6)}"


def coerce_event(event: RawServerEvent | dict[str, Any]) -> RawServerEvent:
    """Accept either a parsed event or the plain inbound mapping."""
    if isinstance(event, RawServerEvent):
        return event
    data = event.get("data")
    message = event.get("message")
    event_type = event.get("type")
    return RawServerEvent(
        category=str(event.get("category") or ""),
        data=data if isinstance(data, dict) else {},
        message=str(message) if message is not None else None,
        event_type=str(event_type) if event_type is not None else None,
    )


class NotificationClassifier:
    """Filters duplicates and appends accepted events to a feed.

    Register with a stream via ``attach()``; every category listener points
    at ``handle_incoming``. Only confirmed duplicates are dropped; events
    with missing fields still produce a notification with defaults.
    """

    def __init__(
        self,
        feed: NotificationFeed,
        deduplicator: Deduplicator | None = None,
    ) -> None:
        self._feed = feed
        self._dedup = deduplicator if deduplicator is not None else Deduplicator()
        self._accepted = 0
        self._duplicates = 0

    @property
    def feed(self) -> NotificationFeed:
        return self._feed

    @property
    def deduplicator(self) -> Deduplicator:
        return self._dedup

    @property
    def accepted_count(self) -> int:
        return self._accepted

    @property
    def duplicate_count(self) -> int:
        return self._duplicates

    def attach(
        self,
        stream: AlertStreamClient,
        categories: Iterable[str] | None = None,
    ) -> None:
        if categories is None:
            categories = list(NotificationCategory)
        for category in categories:
            stream.add_listener(category, self.handle_incoming)

    def detach(
        self,
        stream: AlertStreamClient,
        categories: Iterable[str] | None = None,
    ) -> None:
        if categories is None:
            categories = list(NotificationCategory)
        for category in categories:
            stream.remove_listener(category, self.handle_incoming)

    def handle_incoming(self, event: RawServerEvent | dict[str, Any]) -> Notification | None:
        """Classify one event; returns the new notification or None if a duplicate."""
        raw = coerce_event(event)
        data = StockData.from_payload(raw.data)
        message = derive_message(raw, data)

        key = dedup_key(raw.category, data.timestamp, message)
        if not self._dedup.accept(key):
            self._duplicates += 1
            logger.debug("notification_duplicate", category=raw.category, key=key)
            return None

        now = time.time()
        notification = Notification(
            id=new_notification_id(now),
            category=raw.category,
            message=message,
            data=data,
            received_at=now,
        )
        if not self._feed.append(notification):
            return None

        self._accepted += 1
        logger.info(
            "notification_received",
            notification_id=notification.id,
            category=notification.category,
            code=data.code,
            current_stock=data.current_stock,
        )
        return notification

    def close(self) -> None:
        """Drop dedup state on teardown."""
        self._dedup.clear()
