"""Backend event stream: STOMP over WebSocket with auto-reconnect."""

from src.stream.client import AlertStreamClient, StateChangeCallback, StreamEventCallback
from src.stream.exceptions import (
    FrameParseError,
    StreamConnectionError,
    StreamError,
    StreamProtocolError,
)
from src.stream.stomp import StompFrame, decode_frames, encode_frame

__all__ = [
    "AlertStreamClient",
    "FrameParseError",
    "StateChangeCallback",
    "StompFrame",
    "StreamConnectionError",
    "StreamError",
    "StreamEventCallback",
    "StreamProtocolError",
    "decode_frames",
    "encode_frame",
]
