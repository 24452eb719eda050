"""
Per-connection fixed-window rate limiting for the voice bridge.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass

TimeFn = Callable[[], float]


@dataclass
class RateLimitRecord:
    """Message count for the current window of one connection."""

    count: int
    reset_at: float


class FixedWindowRateLimiter:
    """Count messages per connection in fixed windows.

    Records are keyed by connection id and live on the limiter instance, so
    every server (and every test) owns an isolated registry. The window is
    reset lazily on the first check after it has elapsed.
    """

    def __init__(
        self,
        *,
        limit: int = 10,
        window_seconds: float = 1.0,
        now_fn: TimeFn | None = None,
    ) -> None:
        self.limit = max(0, int(limit))
        self.window_seconds = max(0.0, float(window_seconds))
        self._now = now_fn or time.monotonic
        self._records: dict[str, RateLimitRecord] = {}

    def __contains__(self, key: str) -> bool:
        return key in self._records

    def __len__(self) -> int:
        return len(self._records)

    def register(self, key: str) -> None:
        self._records[key] = RateLimitRecord(
            count=0, reset_at=self._now() + self.window_seconds
        )

    def remove(self, key: str) -> None:
        self._records.pop(key, None)

    def check(self, key: str) -> bool:
        """Count one message for ``key``; False when it must be dropped.

        Unregistered keys are always rejected.
        """
        record = self._records.get(key)
        if record is None:
            return False

        now = self._now()
        if now > record.reset_at:
            record.count = 1
            record.reset_at = now + self.window_seconds
            return True

        if record.count >= self.limit:
            return False

        record.count += 1
        return True


__all__ = ["FixedWindowRateLimiter", "RateLimitRecord"]
