"""StatusLedger and IdempotencyCache: volatile in-process stores.

Both are plain key/value structures with no I/O; state is lost on restart.
"""

from __future__ import annotations

import dataclasses
from typing import Any

from mail_dispatch.models.status import DeliveryResult, DeliveryStatus, StatusRecord


class StatusLedger:
    """Tracking id → ``StatusRecord``.

    Updates replace the whole record.  Status may only move forward along
    queued → sending → sent | failed, and ``attempts`` never decreases;
    violating either raises ``ValueError``.
    """

    def __init__(self) -> None:
        self._records: dict[str, StatusRecord] = {}

    def create(self, tracking_id: str) -> StatusRecord:
        if tracking_id in self._records:
            raise ValueError(f"Tracking id already exists: {tracking_id}")
        record = StatusRecord()
        self._records[tracking_id] = record
        return record

    def get(self, tracking_id: str) -> StatusRecord | None:
        return self._records.get(tracking_id)

    def update(self, tracking_id: str, **changes: Any) -> StatusRecord:
        """Replace the record for *tracking_id* with *changes* applied.

        Raises:
            KeyError: If *tracking_id* has no record.
            ValueError: If the change would regress status or attempts.
        """
        current = self._records[tracking_id]

        status = changes.get("status", current.status)
        if not isinstance(status, DeliveryStatus):
            status = DeliveryStatus(status)
            changes["status"] = status
        if status.rank < current.status.rank or (current.status.is_terminal and status != current.status):
            raise ValueError(f"Illegal status transition {current.status.value} -> {status.value} for {tracking_id}")

        attempts = changes.get("attempts", current.attempts)
        if attempts < current.attempts:
            raise ValueError(f"Attempts may not decrease ({current.attempts} -> {attempts}) for {tracking_id}")

        record = dataclasses.replace(current, **changes)
        self._records[tracking_id] = record
        return record

    def __contains__(self, tracking_id: object) -> bool:
        return tracking_id in self._records

    def __len__(self) -> int:
        return len(self._records)


class IdempotencyCache:
    """Idempotency key → final ``DeliveryResult``.

    Only successful deliveries are cached; a caller retrying after a failure
    gets a fresh attempt chain.
    """

    def __init__(self) -> None:
        self._results: dict[str, DeliveryResult] = {}

    def get(self, key: str) -> DeliveryResult | None:
        return self._results.get(key)

    def put(self, key: str, result: DeliveryResult) -> None:
        if result.status != DeliveryStatus.SENT:
            raise ValueError(f"Only sent results are cacheable, got {result.status.value}")
        self._results[key] = result

    def __contains__(self, key: object) -> bool:
        return key in self._results

    def __len__(self) -> int:
        return len(self._results)
