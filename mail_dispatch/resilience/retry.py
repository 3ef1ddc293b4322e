"""RetryEngine: bounded provider failover with exponential backoff.

One attempt sequence per task.  Every failed attempt both rotates the
shared active provider and waits ``backoff_base * 2**attempt`` seconds
before the next try; a failure that trips the circuit breaker aborts the
sequence at once without waiting.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from mail_dispatch.core.errors import CircuitOpenError, DeliveryError, ProviderTimeoutError
from mail_dispatch.ledger import StatusLedger
from mail_dispatch.providers import Provider, ProviderRegistry
from mail_dispatch.resilience.circuit_breaker import CircuitBreaker

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SendOutcome:
    """Successful end of an attempt sequence.

    Attributes:
        result:   Receipt returned by the provider.
        provider: Name of the provider that accepted the message.
        attempts: Number of attempts the sequence used.
    """

    result: str
    provider: str
    attempts: int


class RetryEngine:
    """Runs attempt sequences against a ``ProviderRegistry``.

    Args:
        registry:          Providers plus the shared active pointer.
        breaker:           Circuit breaker consulted before every attempt.
        ledger:            Status ledger; ``attempts`` is recorded before
                           each provider call.
        max_attempts:      Upper bound on attempts per sequence.
        backoff_base:      Base delay in seconds.
        provider_timeout:  Per-call deadline in seconds, or ``None``.
        sleep:             Awaitable sleep, injectable for tests.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        breaker: CircuitBreaker,
        ledger: StatusLedger,
        *,
        max_attempts: int = 3,
        backoff_base: float = 1.0,
        provider_timeout: float | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.registry = registry
        self.breaker = breaker
        self.ledger = ledger
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base
        self.provider_timeout = provider_timeout
        self._sleep = sleep

    def backoff_delay(self, attempt: int) -> float:
        """Delay in seconds after failed attempt number *attempt* (1-based)."""
        return self.backoff_base * (2**attempt)

    async def attempt(self, message: Any, tracking_id: str) -> SendOutcome:
        """Deliver *message* with failover, or raise.

        Raises:
            CircuitOpenError: The breaker was open, or tripped mid-sequence.
            DeliveryError: Every attempt failed without tripping the breaker;
                           the last provider error is re-raised.
        """
        last_exc: DeliveryError | None = None

        for attempt in range(1, self.max_attempts + 1):
            await self.breaker.reset_if_cooled()
            await self.breaker.pre_check()

            self.ledger.update(tracking_id, attempts=attempt)
            provider = self.registry.active

            try:
                result = await self._call(provider, message)
            except DeliveryError as exc:
                last_exc = exc
                if await self.breaker.on_failure():
                    raise CircuitOpenError(self.breaker.cooldown) from exc

                self.registry.rotate()
                if attempt < self.max_attempts:
                    delay = self.backoff_delay(attempt)
                    logger.warning(
                        "%s for %s (attempt %d/%d), failing over to %s in %.1fs",
                        exc,
                        tracking_id,
                        attempt,
                        self.max_attempts,
                        self.registry.active.name,
                        delay,
                    )
                    await self._sleep(delay)
                continue

            await self.breaker.on_success()
            return SendOutcome(result=result, provider=provider.name, attempts=attempt)

        assert last_exc is not None
        raise last_exc

    async def _call(self, provider: Provider, message: Any) -> str:
        if self.provider_timeout is None:
            return await provider.send(message)
        try:
            return await asyncio.wait_for(provider.send(message), timeout=self.provider_timeout)
        except TimeoutError:
            raise ProviderTimeoutError(provider.name, self.provider_timeout) from None
