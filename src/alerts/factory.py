"""Composition root for the notification pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field

import structlog

from src.alerts.classifier import NotificationClassifier
from src.alerts.dedup import Deduplicator
from src.alerts.feed import NotificationFeed
from src.core.config import Settings
from src.stream.client import AlertStreamClient

logger = structlog.stdlib.get_logger()


@dataclass
class AlertStack:
    """The wired pipeline: one stream, one classifier, one feed."""

    stream: AlertStreamClient
    classifier: NotificationClassifier
    feed: NotificationFeed
    categories: list[str] = field(default_factory=list)

    async def start(self) -> None:
        await self.stream.connect()

    async def close(self) -> None:
        self.classifier.detach(self.stream, self.categories)
        self.classifier.close()
        await self.stream.disconnect()


def create_alert_stack(settings: Settings) -> AlertStack:
    """Build the stream client, classifier and feed from settings.

    The classifier listens on every category that has a configured topic.
    """
    stream = AlertStreamClient(settings.stream)
    feed = NotificationFeed(max_items=settings.alerts.max_notifications)
    classifier = NotificationClassifier(
        feed=feed,
        deduplicator=Deduplicator(window_secs=settings.alerts.dedup_window_secs),
    )
    categories = list(settings.stream.topics)
    classifier.attach(stream, categories)
    logger.debug("alert_stack_created", categories=categories)

    return AlertStack(
        stream=stream,
        classifier=classifier,
        feed=feed,
        categories=categories,
    )
