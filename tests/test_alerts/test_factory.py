"""Tests for create_alert_stack wiring and teardown."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

from src.alerts.factory import create_alert_stack
from src.core.config import AlertsConfig, Settings, StreamConfig
from src.core.types import ConnectionState, RawServerEvent


def _settings(**alerts: object) -> Settings:
    return Settings(
        stream=StreamConfig(ws_url="ws://localhost:8080/ws/websocket"),
        alerts=AlertsConfig(**alerts),  # type: ignore[arg-type]
    )


class TestCreateAlertStack:
    def test_wires_every_configured_topic(self) -> None:
        stack = create_alert_stack(_settings())
        assert sorted(stack.categories) == ["critical", "preventive"]
        assert stack.stream.listener_count("critical") == 1
        assert stack.stream.listener_count("preventive") == 1
        assert stack.classifier.feed is stack.feed

    def test_only_configured_topics_are_wired(self) -> None:
        settings = Settings(
            stream=StreamConfig(ws_url="ws://x", topics={"critical": "/topic/stock/critico"}),
        )
        stack = create_alert_stack(settings)
        assert stack.categories == ["critical"]
        assert stack.stream.listener_count("preventive") == 0

    def test_alerts_settings_applied(self) -> None:
        stack = create_alert_stack(_settings(dedup_window_secs=2.5, max_notifications=3))
        assert stack.feed.max_items == 3
        assert stack.classifier.deduplicator.window_secs == 2.5

    async def test_events_flow_into_feed(self) -> None:
        stack = create_alert_stack(_settings())
        await stack.stream._dispatch(
            RawServerEvent(category="critical", data={"codigo": "MED001"}, message="m"),
        )
        assert len(stack.feed) == 1
        assert stack.feed.notifications()[0].data.code == "MED001"


class TestStackLifecycle:
    async def test_start_connects(self) -> None:
        stack = create_alert_stack(_settings())
        with patch.object(stack.stream, "connect", new_callable=AsyncMock) as connect:
            await stack.start()
        connect.assert_awaited_once()

    async def test_close_detaches_and_disconnects(self) -> None:
        stack = create_alert_stack(_settings())
        await stack.close()
        assert stack.stream.listener_count("critical") == 0
        assert stack.stream.listener_count("preventive") == 0
        assert stack.stream.state == ConnectionState.DISCONNECTED
