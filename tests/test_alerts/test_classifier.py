"""Tests for NotificationClassifier: dedup, normalisation, defaults, wiring."""

from __future__ import annotations

import math

import pytest

from src.alerts.classifier import (
    DEFAULT_MESSAGE,
    NotificationClassifier,
    derive_message,
    new_notification_id,
)
from src.alerts.dedup import Deduplicator
from src.alerts.feed import NotificationFeed
from src.core.config import StreamConfig
from src.core.types import NotificationCategory, RawServerEvent, StockData
from src.stream.client import AlertStreamClient, _parse_event_body


class FakeClock:
    def __init__(self, start: float = 500.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, secs: float) -> None:
        self.now += secs


def _classifier(clock: FakeClock | None = None) -> NotificationClassifier:
    dedup = Deduplicator(window_secs=10.0, clock=clock or FakeClock())
    return NotificationClassifier(feed=NotificationFeed(), deduplicator=dedup)


def _event(**kw: object) -> RawServerEvent:
    defaults: dict[str, object] = {
        "category": "critical",
        "data": {"codigo": "MED001", "timestamp": "2024-05-01T10:00:00"},
        "message": "Stock crítico",
    }
    defaults.update(kw)
    return RawServerEvent(**defaults)  # type: ignore[arg-type]


# ── Dedup ───────────────────────────────────────────────────────


class TestDuplicateSuppression:
    def test_identical_events_within_window_produce_one(self) -> None:
        clock = FakeClock()
        classifier = _classifier(clock)
        assert classifier.handle_incoming(_event()) is not None
        clock.advance(3)
        assert classifier.handle_incoming(_event()) is None
        assert len(classifier.feed) == 1
        assert classifier.duplicate_count == 1

    def test_identical_events_after_window_produce_two(self) -> None:
        clock = FakeClock()
        classifier = _classifier(clock)
        first = classifier.handle_incoming(_event())
        clock.advance(10.5)
        second = classifier.handle_incoming(_event())
        assert first is not None and second is not None
        assert first.id != second.id
        assert len(classifier.feed) == 2

    def test_different_timestamp_not_duplicate(self) -> None:
        classifier = _classifier()
        classifier.handle_incoming(_event())
        classifier.handle_incoming(_event(data={"codigo": "MED001", "timestamp": "later"}))
        assert len(classifier.feed) == 2

    def test_different_category_not_duplicate(self) -> None:
        classifier = _classifier()
        classifier.handle_incoming(_event())
        classifier.handle_incoming(_event(category="preventive"))
        assert len(classifier.feed) == 2

    def test_different_message_not_duplicate(self) -> None:
        classifier = _classifier()
        classifier.handle_incoming(_event())
        classifier.handle_incoming(_event(message="Otro mensaje"))
        assert len(classifier.feed) == 2

    def test_close_clears_dedup_state(self) -> None:
        classifier = _classifier()
        classifier.handle_incoming(_event())
        classifier.close()
        assert classifier.handle_incoming(_event()) is not None


# ── Normalisation ───────────────────────────────────────────────


class TestNormalisation:
    def test_scenario_critical_event(self) -> None:
        classifier = _classifier()
        feed = classifier.feed
        before = feed.unread_count()

        notification = classifier.handle_incoming({
            "category": "critical",
            "data": {"codigo": "MED001", "cantidadNetaActual": 5, "minimos": 10},
            "message": "Stock crítico",
        })

        assert notification is not None
        assert notification.category == NotificationCategory.CRITICAL
        assert notification.data.code == "MED001"
        assert notification.data.current_stock == 5
        assert notification.data.min_stock == 10
        assert notification.read is False
        assert notification.message == "Stock crítico"
        assert feed.unread_count() == before + 1
        assert feed.has_unread_of_category("critical")

    def test_missing_data_gets_defaults(self) -> None:
        classifier = _classifier()
        notification = classifier.handle_incoming(RawServerEvent(category="preventive"))
        assert notification is not None
        assert notification.data.current_stock == 0
        assert notification.data.code == ""
        assert notification.message == DEFAULT_MESSAGE
        assert len(classifier.feed) == 1

    @pytest.mark.parametrize(
        "data",
        [
            {"cantidadNetaActual": 10**400},
            {"minimos": float("nan"), "maximos": float("inf")},
            {"cantidadNetaActual": [5], "stockAnterior": {"v": 1}},
        ],
    )
    def test_malformed_quantities_still_produce_one(self, data: dict[str, object]) -> None:
        classifier = _classifier()
        notification = classifier.handle_incoming({"category": "critical", "data": data})
        assert notification is not None
        assert len(classifier.feed) == 1
        stock = notification.data
        for quantity in (
            stock.current_stock, stock.previous_stock, stock.min_stock, stock.max_stock,
        ):
            assert math.isfinite(quantity)

    def test_plain_mapping_without_data(self) -> None:
        classifier = _classifier()
        notification = classifier.handle_incoming({"category": "critical", "data": None})
        assert notification is not None
        assert notification.data.current_stock == 0

    def test_received_at_is_local_time(self) -> None:
        classifier = _classifier()
        notification = classifier.handle_incoming(_event())
        assert notification is not None
        assert notification.received_at > 0
        assert notification.data.timestamp == "2024-05-01T10:00:00"

    def test_prepends_to_feed(self) -> None:
        classifier = _classifier()
        first = classifier.handle_incoming(_event(message="a"))
        second = classifier.handle_incoming(_event(message="b"))
        assert classifier.feed.notifications() == [second, first]


class TestDeriveMessage:
    def test_depleted_product(self) -> None:
        event = RawServerEvent(category="critical", event_type="PRODUCTO_AGOTADO")
        data = StockData(code="MED001", description="Paracetamol")
        assert derive_message(event, data) == "Producto agotado: Paracetamol (MED001)"

    def test_low_stock(self) -> None:
        event = RawServerEvent(category="preventive", event_type="STOCK_BAJO", message="x")
        data = StockData(code="G2", description="Gasas")
        assert derive_message(event, data) == "Stock bajo: Gasas (G2)"

    def test_plain_message_and_fallback(self) -> None:
        data = StockData()
        assert derive_message(RawServerEvent(category="c", message="hola"), data) == "hola"
        assert derive_message(RawServerEvent(category="c"), data) == DEFAULT_MESSAGE
        assert derive_message(RawServerEvent(category="c", message=""), data) == DEFAULT_MESSAGE


# ── Ids ─────────────────────────────────────────────────────────


class TestIds:
    def test_id_format(self) -> None:
        nid = new_notification_id(1714557600.5)
        millis, suffix = nid.split("-")
        assert millis == "1714557600500"
        assert len(suffix) == 12

    def test_thousand_rapid_notifications_have_distinct_ids(self) -> None:
        classifier = _classifier()
        for i in range(1000):
            classifier.handle_incoming(_event(message=f"alerta {i}"))
        ids = {n.id for n in classifier.feed.notifications()}
        assert len(ids) == 1000
        assert classifier.accepted_count == 1000


# ── Stream wiring ───────────────────────────────────────────────


class TestAttach:
    def test_attach_registers_every_category(self) -> None:
        stream = AlertStreamClient(config=StreamConfig(ws_url="ws://x"))
        classifier = _classifier()
        classifier.attach(stream)
        assert stream.listener_count("critical") == 1
        assert stream.listener_count("preventive") == 1

        classifier.detach(stream)
        assert stream.listener_count("critical") == 0
        assert stream.listener_count("preventive") == 0

    def test_attach_selected_categories(self) -> None:
        stream = AlertStreamClient(config=StreamConfig(ws_url="ws://x"))
        classifier = _classifier()
        classifier.attach(stream, ["critical"])
        assert stream.listener_count("critical") == 1
        assert stream.listener_count("preventive") == 0

    async def test_dispatched_events_reach_feed(self) -> None:
        stream = AlertStreamClient(config=StreamConfig(ws_url="ws://x"))
        classifier = _classifier()
        classifier.attach(stream)

        await stream._dispatch(_event())
        await stream._dispatch(_event())  # redelivery
        await stream._dispatch(_event(category="preventive"))

        assert len(classifier.feed) == 2
        assert classifier.feed.notifications()[0].category == "preventive"

    async def test_oversized_numbers_from_the_wire_reach_feed(self) -> None:
        stream = AlertStreamClient(config=StreamConfig(ws_url="ws://x"))
        classifier = _classifier()
        classifier.attach(stream)

        body = '{"data": {"codigo": "MED001", "minimos": ' + "9" * 1000 + ', "maximos": 1e999}}'
        await stream._dispatch(_parse_event_body("critical", body))

        assert len(classifier.feed) == 1
        stock = classifier.feed.notifications()[0].data
        assert stock.code == "MED001"
        assert math.isfinite(stock.min_stock)
        assert stock.max_stock == 0
