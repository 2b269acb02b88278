"""Minimal STOMP 1.2 frame codec for text WebSocket transports.

Only the client side of the exchange used by the stock-alert broker is
covered: CONNECT / SUBSCRIBE / UNSUBSCRIBE / DISCONNECT out, CONNECTED /
MESSAGE / RECEIPT / ERROR in, plus EOL heart-beats in both directions.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from src.stream.exceptions import FrameParseError

NULL = "\x00"
HEARTBEAT = "\n"
ACCEPT_VERSION = "1.2"

# CONNECT and CONNECTED frames never escape header values.
_UNESCAPED_COMMANDS = frozenset({"CONNECT", "STOMP", "CONNECTED"})

_ESCAPES = {"\\": "\\\\", "\r": "\\r", "\n": "\\n", ":": "\\c"}
_UNESCAPES = {"\\": "\\", "r": "\r", "n": "\n", "c": ":"}


@dataclass
class StompFrame:
    """A single STOMP frame."""

    command: str
    headers: dict[str, str] = field(default_factory=dict)
    body: str = ""


# ── Header escaping ─────────────────────────────────────────────


def _escape(value: str) -> str:
    return "".join(_ESCAPES.get(ch, ch) for ch in value)


def _unescape(value: str) -> str:
    out: list[str] = []
    chars = iter(value)
    for ch in chars:
        if ch != "\\":
            out.append(ch)
            continue
        nxt = next(chars, "")
        if nxt not in _UNESCAPES:
            raise FrameParseError(f"Invalid header escape sequence: \\{nxt}")
        out.append(_UNESCAPES[nxt])
    return "".join(out)


# ── Encoding ────────────────────────────────────────────────────


def encode_frame(frame: StompFrame) -> str:
    """Serialise a frame to its wire text, NUL terminated."""
    escape = frame.command not in _UNESCAPED_COMMANDS
    lines = [frame.command]
    for key, value in frame.headers.items():
        if escape:
            key, value = _escape(key), _escape(value)
        lines.append(f"{key}:{value}")
    return "\n".join(lines) + "\n\n" + frame.body + NULL


def connect_frame(
    host: str,
    heartbeat: tuple[int, int] = (0, 0),
    login: str = "",
    passcode: str = "",
) -> StompFrame:
    headers = {
        "accept-version": ACCEPT_VERSION,
        "host": host,
        "heart-beat": f"{heartbeat[0]},{heartbeat[1]}",
    }
    if login:
        headers["login"] = login
        headers["passcode"] = passcode
    return StompFrame(command="CONNECT", headers=headers)


def subscribe_frame(destination: str, subscription_id: str) -> StompFrame:
    return StompFrame(
        command="SUBSCRIBE",
        headers={"id": subscription_id, "destination": destination, "ack": "auto"},
    )


def unsubscribe_frame(subscription_id: str) -> StompFrame:
    return StompFrame(command="UNSUBSCRIBE", headers={"id": subscription_id})


def disconnect_frame() -> StompFrame:
    return StompFrame(command="DISCONNECT")


# ── Decoding ────────────────────────────────────────────────────


def _parse_one(data: bytes, pos: int) -> tuple[StompFrame, int]:
    """Parse one frame starting at *pos*; return it and the next position."""
    header_end = data.find(b"\n\n", pos)
    header_end_crlf = data.find(b"\r\n\r\n", pos)
    if header_end_crlf != -1 and (header_end == -1 or header_end_crlf < header_end):
        head = data[pos:header_end_crlf]
        body_start = header_end_crlf + 4
    elif header_end != -1:
        head = data[pos:header_end]
        body_start = header_end + 2
    else:
        raise FrameParseError("Frame is missing the header terminator")

    head_lines = head.decode("utf-8").replace("\r\n", "\n").split("\n")
    command = head_lines[0].strip()
    if not command:
        raise FrameParseError("Frame has an empty command")

    unescape = command not in _UNESCAPED_COMMANDS
    headers: dict[str, str] = {}
    for line in head_lines[1:]:
        if not line:
            continue
        key, sep, value = line.partition(":")
        if not sep:
            raise FrameParseError(f"Malformed header line: {line!r}")
        if unescape:
            key, value = _unescape(key), _unescape(value)
        # Repeated headers: the first occurrence wins.
        headers.setdefault(key, value)

    length = headers.get("content-length")
    if length is not None:
        try:
            size = int(length)
        except ValueError as exc:
            raise FrameParseError(f"Invalid content-length: {length!r}") from exc
        nul = body_start + size
        if data[nul:nul + 1] != b"\x00":
            raise FrameParseError("Body does not match content-length")
    else:
        nul = data.find(b"\x00", body_start)
        if nul == -1:
            raise FrameParseError("Frame is missing the NUL terminator")

    body = data[body_start:nul].decode("utf-8", errors="replace")
    return StompFrame(command=command, headers=headers, body=body), nul + 1


def decode_frames(message: str | bytes) -> list[StompFrame]:
    """Decode every frame in a WebSocket message.

    Bare EOLs between frames are heart-beats and are skipped; a message
    made only of EOLs decodes to an empty list.
    """
    data = message.encode("utf-8") if isinstance(message, str) else message
    frames: list[StompFrame] = []
    pos = 0
    while True:
        while pos < len(data) and data[pos:pos + 1] in (b"\r", b"\n"):
            pos += 1
        if pos >= len(data):
            return frames
        frame, pos = _parse_one(data, pos)
        frames.append(frame)


# ── Heart-beat negotiation ──────────────────────────────────────


def parse_heartbeat(value: str) -> tuple[int, int]:
    """Parse a ``heart-beat`` header (``"cx,cy"``); invalid values mean 0,0."""
    try:
        first, second = value.split(",", 1)
        return max(int(first), 0), max(int(second), 0)
    except ValueError:
        return 0, 0


def negotiate_heartbeat(
    client: tuple[int, int], server_header: str,
) -> tuple[float, float]:
    """Resolve the heart-beat intervals in seconds.

    Returns ``(outgoing, incoming)``; 0 means disabled in that direction.
    """
    cx, cy = client
    sx, sy = parse_heartbeat(server_header)
    outgoing = 0 if cx == 0 or sy == 0 else max(cx, sy)
    incoming = 0 if cy == 0 or sx == 0 else max(cy, sx)
    return outgoing / 1000.0, incoming / 1000.0
