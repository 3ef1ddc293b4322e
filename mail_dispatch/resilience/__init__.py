"""Resilience patterns: circuit breaker, rate limiting and retry for delivery.

Protects delivery providers from overload: a fixed-window admission counter
throttles the drain loop, a shared circuit breaker stops attempts after
repeated failures, and the retry engine fails over between providers with
exponential backoff.
"""

from mail_dispatch.resilience.circuit_breaker import CircuitBreaker, CircuitState
from mail_dispatch.resilience.rate_limiter import RateLimiter
from mail_dispatch.resilience.retry import RetryEngine, SendOutcome

__all__ = [
    "CircuitBreaker",
    "CircuitState",
    "RateLimiter",
    "RetryEngine",
    "SendOutcome",
]
