"""In-memory notification feed: newest first, with read state."""

from __future__ import annotations

from collections import deque
from collections.abc import Iterator

import structlog

from src.core.types import Notification

logger = structlog.stdlib.get_logger()


class NotificationFeed:
    """Ordered collection of notifications rendered by the UI.

    Order is strictly insertion order, newest first; it is never re-sorted
    by read state or category. When ``max_items`` is set the oldest
    entries are evicted past that size.
    """

    def __init__(self, max_items: int | None = None) -> None:
        if max_items is not None and max_items < 1:
            raise ValueError("max_items must be positive")
        self._max_items = max_items
        self._items: deque[Notification] = deque()
        self._by_id: dict[str, Notification] = {}

    @property
    def max_items(self) -> int | None:
        return self._max_items

    # ── Mutation ────────────────────────────────────────────────

    def append(self, notification: Notification) -> bool:
        """Insert at the front. Refuses (and logs) a duplicate id."""
        if notification.id in self._by_id:
            logger.warning("feed_duplicate_id", notification_id=notification.id)
            return False

        self._items.appendleft(notification)
        self._by_id[notification.id] = notification

        if self._max_items is not None:
            while len(self._items) > self._max_items:
                evicted = self._items.pop()
                del self._by_id[evicted.id]
                logger.debug("feed_evicted", notification_id=evicted.id)
        return True

    def set_read(self, notification_id: str, read: bool) -> bool:
        """Set the read flag; returns False when the id is unknown."""
        notification = self._by_id.get(notification_id)
        if notification is None:
            return False
        notification.read = read
        return True

    def mark_as_read(self, notification_id: str) -> bool:
        return self.set_read(notification_id, True)

    def mark_all_as_read(self) -> int:
        """Mark everything read; returns how many were unread."""
        changed = 0
        for notification in self._items:
            if not notification.read:
                notification.read = True
                changed += 1
        return changed

    def remove(self, notification_id: str) -> bool:
        notification = self._by_id.pop(notification_id, None)
        if notification is None:
            return False
        self._items.remove(notification)
        return True

    def clear(self) -> None:
        self._items.clear()
        self._by_id.clear()

    # ── Queries ─────────────────────────────────────────────────

    def get(self, notification_id: str) -> Notification | None:
        return self._by_id.get(notification_id)

    def notifications(self) -> list[Notification]:
        """Snapshot of the feed, newest first."""
        return list(self._items)

    def unread_count(self) -> int:
        return sum(1 for n in self._items if not n.read)

    def has_unread_of_category(self, category: str) -> bool:
        return any(not n.read and n.category == category for n in self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[Notification]:
        return iter(list(self._items))

    def __contains__(self, notification_id: object) -> bool:
        return notification_id in self._by_id
