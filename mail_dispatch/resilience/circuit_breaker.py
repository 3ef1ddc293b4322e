"""Async circuit breaker shared by every delivery attempt.

Two states with a lazy recovery check:

    CLOSED  →  (failure_threshold consecutive failures)          →  OPEN
    OPEN    →  (reset_if_cooled() after cooldown since last failure) →  CLOSED

There is no timer and no half-open probe: the cooldown is evaluated only
when the retry engine calls ``reset_if_cooled()`` at the start of an
attempt.  A single success zeroes the failure count.
"""

from __future__ import annotations

import asyncio
import logging
import time
from enum import Enum

from mail_dispatch.core.errors import CircuitOpenError

logger = logging.getLogger(__name__)


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"


class CircuitBreaker:
    """Failure-count / threshold / cooldown gate for provider calls.

    Args:
        failure_threshold:  Consecutive failures before opening the circuit.
        cooldown:           Seconds since the last failure before an OPEN
                            circuit may be closed by ``reset_if_cooled()``.
    """

    def __init__(self, failure_threshold: int = 3, cooldown: float = 30.0) -> None:
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        self.failure_threshold = failure_threshold
        self.cooldown = cooldown

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: float | None = None
        self._lock = asyncio.Lock()

        # Metrics
        self.total_calls = 0
        self.total_failures = 0
        self.total_rejections = 0
        self.total_successes = 0
        self.total_trips = 0

    # ── Public properties ────────────────────────────────────────────

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state == CircuitState.OPEN

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def last_failure_time(self) -> float | None:
        """Monotonic timestamp of the most recent failure, if any."""
        return self._last_failure_time

    # ── State transitions ────────────────────────────────────────────

    async def reset_if_cooled(self) -> bool:
        """Close an OPEN circuit whose cooldown has elapsed.

        Returns ``True`` when this call closed the circuit.
        """
        async with self._lock:
            if self._state != CircuitState.OPEN or self._last_failure_time is None:
                return False
            if time.monotonic() - self._last_failure_time <= self.cooldown:
                return False
            self._state = CircuitState.CLOSED
            self._failure_count = 0
            self._last_failure_time = None
        logger.info("Circuit breaker cooled down, closed")
        return True

    async def pre_check(self) -> None:
        """Raise ``CircuitOpenError`` if the circuit is open.

        Must be called **before** each provider call.
        """
        async with self._lock:
            if self._state == CircuitState.OPEN:
                self.total_rejections += 1
                raise CircuitOpenError(self._retry_after())
            self.total_calls += 1

    async def on_success(self) -> None:
        """Record a successful delivery. Fully heals the failure count."""
        async with self._lock:
            self.total_successes += 1
            self._failure_count = 0

    async def on_failure(self) -> bool:
        """Record a failed delivery.

        Returns ``True`` when this failure opened the circuit.
        """
        async with self._lock:
            self._failure_count += 1
            self.total_failures += 1
            self._last_failure_time = time.monotonic()

            if self._state == CircuitState.CLOSED and self._failure_count >= self.failure_threshold:
                self._state = CircuitState.OPEN
                self.total_trips += 1
                tripped = True
            else:
                tripped = False

        if tripped:
            logger.warning(
                "Circuit breaker opened after %d consecutive failures (cooldown %.1fs)",
                self._failure_count,
                self.cooldown,
            )
        return tripped

    async def reset(self) -> None:
        """Force-reset the circuit breaker to CLOSED state."""
        async with self._lock:
            self._state = CircuitState.CLOSED
            self._failure_count = 0
            self._last_failure_time = None

    def _retry_after(self) -> float:
        if self._last_failure_time is None:
            return 0.0
        return self.cooldown - (time.monotonic() - self._last_failure_time)

    def snapshot(self) -> dict:
        """Return a JSON-serializable snapshot for health/metrics."""
        return {
            "state": self._state.value,
            "failure_count": self._failure_count,
            "threshold": self.failure_threshold,
            "cooldown_seconds": self.cooldown,
            "total_calls": self.total_calls,
            "total_failures": self.total_failures,
            "total_rejections": self.total_rejections,
            "total_successes": self.total_successes,
            "total_trips": self.total_trips,
        }
