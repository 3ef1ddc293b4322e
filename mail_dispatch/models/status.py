"""Delivery status records and result snapshots.

Records are immutable; the ledger replaces a record wholesale on every
update so concurrent readers never observe a half-applied change.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any


class DeliveryStatus(str, enum.Enum):
    """Lifecycle of a tracked delivery: queued → sending → sent | failed."""

    QUEUED = "queued"
    SENDING = "sending"
    SENT = "sent"
    FAILED = "failed"

    @property
    def rank(self) -> int:
        return _RANKS[self]

    @property
    def is_terminal(self) -> bool:
        return self in (DeliveryStatus.SENT, DeliveryStatus.FAILED)


_RANKS: dict[DeliveryStatus, int] = {
    DeliveryStatus.QUEUED: 0,
    DeliveryStatus.SENDING: 1,
    DeliveryStatus.SENT: 2,
    DeliveryStatus.FAILED: 2,
}


def utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class StatusRecord:
    """Ledger entry for one tracking identifier."""

    status: DeliveryStatus = DeliveryStatus.QUEUED
    attempts: int = 0
    created_at: datetime = field(default_factory=utcnow)
    sent_at: datetime | None = None
    provider: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class DeliveryResult:
    """Point-in-time snapshot of a delivery, keyed by its tracking id.

    Handles returned by ``DispatchEngine.submit`` resolve to one of these,
    and the idempotency cache stores them, so a replay never reflects later
    ledger changes.
    """

    tracking_id: str
    status: DeliveryStatus
    attempts: int
    created_at: datetime
    sent_at: datetime | None = None
    provider: str | None = None
    error: str | None = None

    @classmethod
    def from_record(cls, tracking_id: str, record: StatusRecord) -> DeliveryResult:
        return cls(
            tracking_id=tracking_id,
            status=record.status,
            attempts=record.attempts,
            created_at=record.created_at,
            sent_at=record.sent_at,
            provider=record.provider,
            error=record.error,
        )

    def to_dict(self) -> dict[str, Any]:
        """Render as JSON-safe data; unset optional fields are omitted."""
        data: dict[str, Any] = {
            "tracking_id": self.tracking_id,
            "status": self.status.value,
            "attempts": self.attempts,
            "created_at": self.created_at.isoformat(),
        }
        if self.sent_at is not None:
            data["sent_at"] = self.sent_at.isoformat()
        if self.provider is not None:
            data["provider"] = self.provider
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass(frozen=True)
class StatusNotFound:
    """Returned by status lookups for an unknown tracking id. Never raised."""

    tracking_id: str
    error: str = "invalid trackingId"

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.error}
