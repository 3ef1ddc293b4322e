"""Fixed-window admission counter for the drain loop.

The counter is incremented once per popped task and zeroed the first time
the drain loop observes the clock past ``window_reset_at``; the next reset
point is then ``now + window_seconds``.  This is a reset bucket, not a
sliding window, so up to ``2 * limit`` tasks can be admitted across a
window boundary.
"""

from __future__ import annotations

import time


class RateLimiter:
    """Per-process admission gate.

    Args:
        limit:           Tasks admitted per window.
        window_seconds:  Window length in seconds.
    """

    def __init__(self, limit: int = 10, window_seconds: float = 60.0) -> None:
        if limit < 0:
            raise ValueError("limit must be >= 0")
        self.limit = limit
        self.window_seconds = window_seconds
        self.count = 0
        self.window_reset_at = time.monotonic() + window_seconds

    def roll_window(self) -> bool:
        """Start a new window if the current one has expired.

        Returns ``True`` when the counter was reset.
        """
        now = time.monotonic()
        if now <= self.window_reset_at:
            return False
        self.count = 0
        self.window_reset_at = now + self.window_seconds
        return True

    def has_capacity(self) -> bool:
        return self.count < self.limit

    def acquire(self) -> None:
        """Count one admitted task against the current window."""
        self.count += 1

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.count)

    def snapshot(self) -> dict:
        """Return a JSON-serializable snapshot for health/metrics."""
        return {
            "limit": self.limit,
            "count": self.count,
            "remaining": self.remaining,
            "window_seconds": self.window_seconds,
            "resets_in_seconds": round(max(0.0, self.window_reset_at - time.monotonic()), 3),
        }
