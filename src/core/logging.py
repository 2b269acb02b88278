"""structlog wiring for the alert service.

Both structlog loggers and plain stdlib loggers (websockets, aiohttp) end
up on one stderr handler with the same processor chain, so every record
carries the service name, level, logger and ISO timestamp.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

from src.core.config import get_settings

SERVICE_NAME = "stock-alerts"

# Frame dumps and per-request access lines; kept at WARNING or above.
_QUIET_LOGGERS = ("websockets", "aiohttp.access")

_RENDERERS = ("json", "console")


def _add_service(
    _logger: Any, _method: str, event_dict: dict[str, Any],
) -> dict[str, Any]:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def _shared_processors() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        _add_service,
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]


def _renderer(fmt: str) -> structlog.types.Processor:
    if fmt not in _RENDERERS:
        raise ValueError(f"Unknown log format {fmt!r}; expected one of {_RENDERERS}")
    if fmt == "console":
        return structlog.dev.ConsoleRenderer()
    return structlog.processors.JSONRenderer()


def _quiet_third_party(level: int) -> None:
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def setup_logging(level: str | None = None, fmt: str | None = None) -> None:
    """Route structlog and stdlib logging through one stderr handler.

    Args:
        level: Level name override (e.g. "DEBUG"); defaults to ``logging.level``.
        fmt: "json" or "console"; defaults to ``logging.format``.
    """
    settings = get_settings()
    log_level = logging.getLevelName((level or settings.logging.level).upper())
    if not isinstance(log_level, int):
        log_level = logging.INFO
    shared = _shared_processors()
    renderer = _renderer(fmt or settings.logging.format)

    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared,
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
    ))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(log_level)
    _quiet_third_party(log_level)
