"""Domain types for stock-alert notifications."""

from __future__ import annotations

import math
import time
from enum import StrEnum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class NotificationCategory(StrEnum):
    """Alert class pushed by the backend.

    Only these two are produced today; the stream and feed layers carry the
    category as a plain string so new backend categories pass through.
    """

    CRITICAL = "critical"  # stock at or below minimum
    PREVENTIVE = "preventive"  # stock approaching minimum


class ConnectionState(StrEnum):
    """Lifecycle state of the event-stream connection."""

    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"


class BackendEventType(StrEnum):
    """Event ``type`` values the backend attaches to stock messages."""

    PRODUCT_DEPLETED = "PRODUCTO_AGOTADO"
    LOW_STOCK = "STOCK_BAJO"


# ── Inbound ──────────────────────────────────────────────────────


class RawServerEvent(BaseModel):
    """An event as received from the stream, before classification."""

    category: str
    data: dict[str, Any] = Field(default_factory=dict)
    message: str | None = None
    event_type: str | None = None
    destination: str = ""
    received_at: float = Field(default_factory=time.time)


# ── Normalised ───────────────────────────────────────────────────


class StockData(BaseModel):
    """Stock snapshot carried by a notification.

    Accepts the backend's field names (``codigo``, ``cantidadNetaActual``,
    ...) as well as the attribute names. Missing or unparsable values fall
    back to ``""`` / ``0`` so building one never fails on a partial payload.
    """

    model_config = ConfigDict(populate_by_name=True)

    code: str = Field(default="", validation_alias=AliasChoices("codigo", "code"))
    description: str = Field(
        default="", validation_alias=AliasChoices("descripcion", "description"),
    )
    lot: str = Field(default="", validation_alias=AliasChoices("lote", "lot"))
    current_stock: float = Field(
        default=0.0,
        validation_alias=AliasChoices("cantidadNetaActual", "current_stock"),
    )
    previous_stock: float = Field(
        default=0.0, validation_alias=AliasChoices("stockAnterior", "previous_stock"),
    )
    min_stock: float = Field(
        default=0.0, validation_alias=AliasChoices("minimos", "min_stock"),
    )
    max_stock: float = Field(
        default=0.0, validation_alias=AliasChoices("maximos", "max_stock"),
    )
    timestamp: str = ""
    raw: dict[str, Any] = Field(default_factory=dict)

    @field_validator("code", "description", "lot", "timestamp", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        if value is None:
            return ""
        return str(value)

    @field_validator(
        "current_stock", "previous_stock", "min_stock", "max_stock", mode="before",
    )
    @classmethod
    def _coerce_quantity(cls, value: Any) -> float:
        """Numeric or numeric-text to a finite float; anything else is 0."""
        if value is None or isinstance(value, bool):
            return 0.0
        try:
            number = float(value)
        except (TypeError, ValueError, OverflowError):
            return 0.0
        return number if math.isfinite(number) else 0.0

    @classmethod
    def from_payload(cls, payload: Any) -> StockData:
        """Build from an arbitrary payload; non-dict payloads yield defaults."""
        if not isinstance(payload, dict):
            return cls()
        known = {k: v for k, v in payload.items() if k != "raw"}
        return cls.model_validate({**known, "raw": dict(payload)})


class Notification(BaseModel):
    """Normalised, UI-facing notification record.

    ``received_at`` is the local receipt time; the server-side timestamp
    lives in ``data.timestamp``.
    """

    id: str
    category: str
    message: str
    data: StockData = Field(default_factory=StockData)
    received_at: float = Field(default_factory=time.time)
    read: bool = False
