"""Exception hierarchy for the backend event-stream client."""

from __future__ import annotations


class StreamError(Exception):
    """Base exception for all event-stream errors."""


class StreamConnectionError(StreamError):
    """Failed to open, or lost, the WebSocket transport."""


class StreamProtocolError(StreamError):
    """The broker sent an ERROR frame or violated the STOMP exchange."""


class FrameParseError(StreamError):
    """A received text frame is not a valid STOMP frame."""
