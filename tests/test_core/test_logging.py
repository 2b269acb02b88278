"""Tests for setup_logging: levels, renderers, third-party quieting."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator

import pytest
import structlog

from src.core.config import reset_settings
from src.core.logging import SERVICE_NAME, setup_logging


@pytest.fixture(autouse=True)
def _restore_logging() -> Iterator[None]:
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    quiet_levels = {
        name: logging.getLogger(name).level for name in ("websockets", "aiohttp.access")
    }
    reset_settings()
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    for name, lvl in quiet_levels.items():
        logging.getLogger(name).setLevel(lvl)
    structlog.reset_defaults()
    reset_settings()


class TestSetupLogging:
    def test_level_override(self) -> None:
        setup_logging(level="debug", fmt="console")
        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1

    def test_unknown_level_falls_back_to_info(self) -> None:
        setup_logging(level="chatty", fmt="json")
        assert logging.getLogger().level == logging.INFO

    def test_unknown_format_rejected(self) -> None:
        with pytest.raises(ValueError):
            setup_logging(level="INFO", fmt="xml")

    def test_third_party_loggers_quieted(self) -> None:
        setup_logging(level="DEBUG", fmt="json")
        assert logging.getLogger("websockets").level == logging.WARNING
        assert logging.getLogger("aiohttp.access").level == logging.WARNING

        setup_logging(level="ERROR", fmt="json")
        assert logging.getLogger("websockets").level == logging.ERROR

    def test_stdlib_records_rendered_as_json(self, capsys: pytest.CaptureFixture[str]) -> None:
        setup_logging(level="INFO", fmt="json")
        logging.getLogger("websockets.client").warning("connection dropped")

        line = capsys.readouterr().err.strip().splitlines()[-1]
        record = json.loads(line)
        assert record["event"] == "connection dropped"
        assert record["service"] == SERVICE_NAME
        assert record["level"] == "warning"
        assert record["logger"] == "websockets.client"
