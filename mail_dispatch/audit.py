"""Delivery audit trail.

Provides ``AuditEvent`` with JSON serialization, ``JsonlAuditSink`` which
appends one timestamp-prefixed JSON line per terminal outcome, and
``NullAuditSink`` for when file auditing is disabled.  Sinks are
fire-and-forget from the engine's point of view: their failures are logged
and never reach the dispatch path.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol

import aiofiles

from mail_dispatch.models.status import DeliveryResult


@dataclass
class AuditEvent:
    """Record of one terminal delivery outcome."""

    tracking_id: str
    status: str
    attempts: int
    timestamp: str
    provider: str | None = None
    error: str | None = None

    @classmethod
    def from_result(cls, result: DeliveryResult) -> AuditEvent:
        return cls(
            tracking_id=result.tracking_id,
            status=result.status.value,
            attempts=result.attempts,
            timestamp=datetime.now(UTC).isoformat(),
            provider=result.provider,
            error=result.error,
        )

    def to_json(self) -> str:
        """Serialize to a single-line JSON string (JSONL-safe)."""
        return json.dumps(asdict(self), separators=(",", ":"), default=str)


class AuditSink(Protocol):
    """Capability: append a record of an outcome."""

    async def record(self, event: AuditEvent) -> None: ...


class NullAuditSink:
    """Discards every event."""

    async def record(self, event: AuditEvent) -> None:
        return None


class JsonlAuditSink:
    """Appends ``[<timestamp>] <json>`` lines to *log_path*."""

    def __init__(self, log_path: str | Path = "logs/email.log") -> None:
        self.log_path = Path(log_path)

    async def record(self, event: AuditEvent) -> None:
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(self.log_path, "a") as f:
            await f.write(f"[{event.timestamp}] {event.to_json()}\n")
