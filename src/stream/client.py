"""Persistent STOMP-over-WebSocket connection to the stock-alert broker."""

from __future__ import annotations

import asyncio
import json
import time
from collections.abc import Awaitable, Callable
from typing import Any

import structlog
import websockets
from websockets.asyncio.client import ClientConnection

from src.core.config import StreamConfig, get_settings
from src.core.types import ConnectionState, RawServerEvent
from src.stream.exceptions import FrameParseError, StreamConnectionError, StreamProtocolError
from src.stream.stomp import (
    HEARTBEAT,
    StompFrame,
    connect_frame,
    decode_frames,
    disconnect_frame,
    encode_frame,
    negotiate_heartbeat,
    subscribe_frame,
)

logger = structlog.stdlib.get_logger()

# Type aliases for listener callbacks
StreamEventCallback = Callable[[RawServerEvent], Awaitable[None] | None]
StateChangeCallback = Callable[[ConnectionState], None]

# Envelope keys that are not part of the stock payload.
_ENVELOPE_KEYS = frozenset({"category", "data", "message", "payload", "type"})


def _parse_event_body(category: str, body: str, destination: str = "") -> RawServerEvent:
    """Parse a MESSAGE body into a RawServerEvent.

    The broker sends the stock fields either at the top level, under
    ``data``, or JSON-encoded in a ``payload`` string; all are merged.
    Anything unparsable degrades to an event with empty data.
    """
    payload: Any = {}
    if body.strip():
        try:
            payload = json.loads(body)
        except ValueError:  # also raised for integers past the digit limit
            logger.warning("stream_invalid_json", category=category, raw=body[:200])
    if not isinstance(payload, dict):
        payload = {}

    data: dict[str, Any] = {
        k: v for k, v in payload.items() if k not in _ENVELOPE_KEYS
    }
    nested = payload.get("data")
    if isinstance(nested, dict):
        data.update(nested)

    inner = payload.get("payload")
    if isinstance(inner, str) and inner.strip():
        try:
            inner = json.loads(inner)
        except ValueError:
            logger.warning("stream_invalid_payload", category=category, raw=inner[:200])
            inner = None
    if isinstance(inner, dict):
        data.update(inner)

    message = payload.get("message")
    event_type = payload.get("type")
    return RawServerEvent(
        category=category,
        data=data,
        message=str(message) if message is not None else None,
        event_type=str(event_type) if event_type is not None else None,
        destination=destination,
    )


async def _cancel_task(task: asyncio.Task[None] | None) -> None:
    if task is None or task.done():
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


class AlertStreamClient:
    """Owns the single event-stream connection to the backend.

    Subscribes to one STOMP topic per configured category and fans every
    MESSAGE out to the listeners registered for that category. Reconnects
    with exponential backoff until ``disconnect()`` is called; listener
    registrations survive reconnects.

    State machine::

        DISCONNECTED --connect()--> CONNECTING --CONNECTED frame--> CONNECTED
        CONNECTED --close/error--> CONNECTING --(backoff)--> ...
        any --disconnect()--> DISCONNECTED
    """

    def __init__(self, config: StreamConfig | None = None) -> None:
        self._config = config or get_settings().stream
        self._listeners: dict[str, list[StreamEventCallback]] = {}
        self._state_callbacks: list[StateChangeCallback] = []
        self._state = ConnectionState.DISCONNECTED
        self._ws: ClientConnection | None = None
        self._task: asyncio.Task[None] | None = None
        self._running = False
        self._reconnect_delay = self._config.reconnect_base_secs
        # subscription id -> category, valid for the current session only
        self._subscriptions: dict[str, str] = {}
        self._last_received = 0.0
        self._session_count = 0

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def session_count(self) -> int:
        """Number of sessions that completed the STOMP handshake."""
        return self._session_count

    def is_connected(self) -> bool:
        """Last known transport state; never probes the connection."""
        return self._state == ConnectionState.CONNECTED

    # ── Listener registry ───────────────────────────────────────

    def add_listener(self, category: str, callback: StreamEventCallback) -> None:
        """Register *callback* for every event tagged with *category*."""
        self._listeners.setdefault(str(category), []).append(callback)

    def remove_listener(self, category: str, callback: StreamEventCallback) -> None:
        """Unregister *callback*; no-op when it was never registered."""
        callbacks = self._listeners.get(str(category))
        if not callbacks:
            return
        try:
            callbacks.remove(callback)
        except ValueError:
            return
        if not callbacks:
            del self._listeners[str(category)]

    def listener_count(self, category: str) -> int:
        return len(self._listeners.get(str(category), []))

    def on_state_change(self, callback: StateChangeCallback) -> None:
        """Register a callback invoked on every connection state change."""
        self._state_callbacks.append(callback)

    # ── Lifecycle ───────────────────────────────────────────────

    async def connect(self) -> None:
        """Start the connection loop in a background task.

        Returns immediately; the transport opens asynchronously. No-op if
        already connecting or connected.
        """
        if self._running:
            return
        if not self._config.ws_url:
            logger.error("stream_url_not_configured")
            return
        self._running = True
        self._reconnect_delay = self._config.reconnect_base_secs
        self._set_state(ConnectionState.CONNECTING)
        self._task = asyncio.create_task(self._run_loop())

    async def disconnect(self) -> None:
        """Close the transport and stop reconnecting. Safe to call repeatedly."""
        was_running = self._running
        self._running = False

        ws = self._ws
        self._ws = None
        if ws is not None:
            try:
                if self._state == ConnectionState.CONNECTED:
                    await ws.send(encode_frame(disconnect_frame()))
                await ws.close()
            except Exception:
                logger.warning("stream_close_error", exc_info=True)

        task = self._task
        self._task = None
        if task is not None:
            task.cancel()
            if task is not asyncio.current_task():
                try:
                    await task
                except asyncio.CancelledError:
                    pass

        self._subscriptions.clear()
        self._set_state(ConnectionState.DISCONNECTED)
        if was_running:
            logger.info("stream_stopped", url=self._config.ws_url)

    # ── Connection loop ─────────────────────────────────────────

    async def _run_loop(self) -> None:
        """Main loop: connect, subscribe, listen, reconnect on failure."""
        while self._running:
            try:
                await self._connect_and_listen()
            except asyncio.CancelledError:
                break
            except Exception as exc:
                logger.warning(
                    "stream_session_failed",
                    url=self._config.ws_url,
                    error=str(exc),
                )

            if not self._running:
                break
            self._set_state(ConnectionState.CONNECTING)
            logger.warning("stream_reconnecting", delay=self._reconnect_delay)
            try:
                await asyncio.sleep(self._reconnect_delay)
            except asyncio.CancelledError:
                break
            self._reconnect_delay = min(
                self._reconnect_delay * 2, self._config.reconnect_cap_secs,
            )

    async def _connect_and_listen(self) -> None:
        """Open the transport, perform the STOMP handshake, process frames."""
        try:
            self._ws = await websockets.connect(self._config.ws_url)
        except Exception as exc:
            raise StreamConnectionError(
                f"Failed to connect to {self._config.ws_url}"
            ) from exc

        ws = self._ws
        heartbeat_task: asyncio.Task[None] | None = None
        try:
            await ws.send(encode_frame(connect_frame(
                host=self._config.host,
                heartbeat=(
                    self._config.heartbeat_outgoing_ms,
                    self._config.heartbeat_incoming_ms,
                ),
                login=self._config.login,
                passcode=self._config.passcode.get_secret_value(),
            )))
            self._last_received = time.monotonic()

            async for raw_msg in ws:
                if not self._running:
                    break
                self._last_received = time.monotonic()
                for frame in self._decode(raw_msg):
                    if frame.command == "CONNECTED":
                        await _cancel_task(heartbeat_task)
                        heartbeat_task = await self._on_connected(ws, frame)
                    elif frame.command == "MESSAGE":
                        await self._on_message(frame)
                    elif frame.command == "ERROR":
                        raise StreamProtocolError(
                            frame.headers.get("message") or frame.body or "ERROR frame"
                        )
                    else:
                        logger.debug("stream_frame_ignored", command=frame.command)

            if self._running:
                logger.warning("stream_closed_by_server", url=self._config.ws_url)
        finally:
            await _cancel_task(heartbeat_task)
            self._subscriptions.clear()
            if self._running:
                self._set_state(ConnectionState.CONNECTING)
            if self._ws is not None:
                await self._ws.close()
                self._ws = None

    def _decode(self, raw: str | bytes) -> list[StompFrame]:
        try:
            return decode_frames(raw)
        except (FrameParseError, UnicodeDecodeError):
            logger.warning("stream_invalid_frame", raw=str(raw)[:200])
            return []

    async def _on_connected(
        self, ws: ClientConnection, frame: StompFrame,
    ) -> asyncio.Task[None] | None:
        """Subscribe to every configured topic and arm heart-beats."""
        # Reset backoff on successful connection
        self._reconnect_delay = self._config.reconnect_base_secs

        self._subscriptions.clear()
        for index, (category, destination) in enumerate(self._config.topics.items()):
            sub_id = f"sub-{index}"
            self._subscriptions[sub_id] = category
            await ws.send(encode_frame(subscribe_frame(destination, sub_id)))

        self._session_count += 1
        self._set_state(ConnectionState.CONNECTED)
        logger.info(
            "stream_connected",
            url=self._config.ws_url,
            server=frame.headers.get("server", ""),
            topics=list(self._config.topics.values()),
        )

        outgoing, incoming = negotiate_heartbeat(
            (self._config.heartbeat_outgoing_ms, self._config.heartbeat_incoming_ms),
            frame.headers.get("heart-beat", "0,0"),
        )
        if outgoing <= 0 and incoming <= 0:
            return None
        return asyncio.create_task(self._heartbeat_loop(ws, outgoing, incoming))

    async def _heartbeat_loop(
        self, ws: ClientConnection, outgoing: float, incoming: float,
    ) -> None:
        """Send EOL heart-beats and drop the session if the broker goes quiet."""
        interval = min(x for x in (outgoing, incoming) if x > 0)
        while self._running:
            try:
                await asyncio.sleep(interval)
                if outgoing > 0:
                    await ws.send(HEARTBEAT)
                if incoming > 0 and time.monotonic() - self._last_received > incoming * 2:
                    logger.warning("stream_heartbeat_timeout", incoming_secs=incoming)
                    await ws.close()
                    return
            except asyncio.CancelledError:
                break
            except Exception as exc:
                logger.debug("stream_heartbeat_stopped", error=str(exc))
                break

    async def _on_message(self, frame: StompFrame) -> None:
        destination = frame.headers.get("destination", "")
        category = self._subscriptions.get(frame.headers.get("subscription", ""))
        if category is None:
            category = self._category_for_destination(destination)
        if category is None:
            logger.debug("stream_message_unmatched", destination=destination)
            return
        event = _parse_event_body(category, frame.body, destination)
        await self._dispatch(event)

    def _category_for_destination(self, destination: str) -> str | None:
        for category, topic in self._config.topics.items():
            if topic == destination:
                return category
        return None

    async def _dispatch(self, event: RawServerEvent) -> None:
        """Deliver an event to every listener of its category, in order."""
        callbacks = list(self._listeners.get(event.category, []))
        if not callbacks:
            logger.debug("stream_event_unrouted", category=event.category)
            return
        for cb in callbacks:
            try:
                result = cb(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                logger.exception("stream_listener_error", category=event.category)

    def _set_state(self, state: ConnectionState) -> None:
        if state == self._state:
            return
        previous, self._state = self._state, state
        logger.debug("stream_state_changed", previous=previous, state=state)
        for cb in list(self._state_callbacks):
            try:
                cb(state)
            except Exception:
                logger.exception("stream_state_callback_error", state=state)
