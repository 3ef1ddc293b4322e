"""Structured errors for the mail-dispatch service.

``DeliveryError`` is transient and provider-specific; the retry engine
absorbs it.  ``CircuitOpenError`` is systemic and aborts an attempt
sequence.  Neither is ever raised to a ``submit`` caller: both end up as the
``error`` string of a ``failed`` delivery result.
"""

from pydantic import BaseModel


class MailDispatchError(Exception):
    """Base exception for all mail-dispatch errors."""


class DeliveryError(MailDispatchError):
    """Raised by a provider when a single delivery attempt fails.

    Routine and retryable.  The message is what ends up recorded on the
    status ledger when it is the last error of an attempt sequence.
    """

    def __init__(self, provider_name: str, detail: str = "") -> None:
        self.provider_name = provider_name
        self.detail = detail
        super().__init__(detail or f"{provider_name} failed")


class ProviderTimeoutError(DeliveryError):
    """Raised when a provider call exceeds its configured deadline."""

    def __init__(self, provider_name: str, timeout_seconds: float) -> None:
        self.timeout_seconds = timeout_seconds
        super().__init__(provider_name, f"{provider_name} timed out after {timeout_seconds}s")


class CircuitOpenError(MailDispatchError):
    """Raised when the circuit breaker rejects or aborts an attempt sequence.

    Attributes:
        retry_after: Seconds until the lazy cooldown check can close the circuit.
    """

    MESSAGE = "Circuit breaker tripped"

    def __init__(self, retry_after: float = 0.0) -> None:
        self.retry_after = max(0.0, retry_after)
        super().__init__(self.MESSAGE)


class StructuredErrorResponse(BaseModel):
    """Structured error body for the HTTP front end.

    Returns ``{"error": str, "code": str, "request_id": str}`` with no stack traces.
    """

    error: str
    code: str
    request_id: str

    @classmethod
    def from_exception(cls, exc: Exception, request_id: str) -> "StructuredErrorResponse":
        """Create from an exception, mapping to machine-readable codes.

        Never leaks internal details for unhandled exceptions.
        """
        if isinstance(exc, CircuitOpenError):
            return cls(error=str(exc), code="CIRCUIT_OPEN", request_id=request_id)
        if isinstance(exc, ProviderTimeoutError):
            return cls(error=str(exc), code="PROVIDER_TIMEOUT", request_id=request_id)
        if isinstance(exc, DeliveryError):
            return cls(error=str(exc), code="DELIVERY_FAILED", request_id=request_id)
        if isinstance(exc, MailDispatchError):
            return cls(error=str(exc), code="DISPATCH_ERROR", request_id=request_id)
        # Unhandled: never expose internal details
        return cls(
            error="An internal error occurred",
            code="INTERNAL_ERROR",
            request_id=request_id,
        )
