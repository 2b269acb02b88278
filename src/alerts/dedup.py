"""Content-keyed duplicate suppression over a sliding time window."""

from __future__ import annotations

import time
from collections.abc import Callable

DEFAULT_WINDOW_SECS = 10.0


def dedup_key(category: str | None, timestamp: str | None, message: str | None) -> str:
    """Identity of a logical event, independent of redelivery.

    The backend does not guarantee stable event ids, so the key is built
    from content: category, server timestamp and message text.
    """
    return f"{category or ''}--{timestamp or ''}-{message or ''}"


class Deduplicator:
    """Remembers recently accepted keys for ``window_secs``.

    Expired keys are swept on every check, so no per-key timers exist and
    nothing is left pending after ``clear()``.
    """

    def __init__(
        self,
        window_secs: float = DEFAULT_WINDOW_SECS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._window_secs = window_secs
        self._clock = clock
        # key -> time first accepted
        self._seen: dict[str, float] = {}

    @property
    def window_secs(self) -> float:
        return self._window_secs

    def accept(self, key: str) -> bool:
        """Record *key* and return True, or return False if it is a repeat."""
        now = self._clock()
        self._sweep(now)
        if key in self._seen:
            return False
        self._seen[key] = now
        return True

    def _sweep(self, now: float) -> None:
        expired = [k for k, t in self._seen.items() if now - t >= self._window_secs]
        for key in expired:
            del self._seen[key]

    def clear(self) -> None:
        """Forget every key (teardown)."""
        self._seen.clear()

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, str) or key not in self._seen:
            return False
        return self._clock() - self._seen[key] < self._window_secs

    def __len__(self) -> int:
        return len(self._seen)
