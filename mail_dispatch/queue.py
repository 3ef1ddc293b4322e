"""DispatchQueue: FIFO of pending delivery tasks."""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass
from typing import Any

from mail_dispatch.models.status import DeliveryResult


@dataclass
class PendingTask:
    """One accepted submission waiting for the drain loop.

    Attributes:
        message:          Payload handed to the provider.
        tracking_id:      Ledger key minted at submission.
        future:           Caller's handle; resolved exactly once.
        idempotency_key:  Optional caller-supplied dedup key.
    """

    message: Any
    tracking_id: str
    future: asyncio.Future[DeliveryResult]
    idempotency_key: str | None = None

    def resolve(self, result: DeliveryResult) -> bool:
        """Resolve the handle; returns ``False`` if it was already done."""
        if self.future.done():
            return False
        self.future.set_result(result)
        return True


class DispatchQueue:
    """Strict FIFO.  Only the drain loop pops; ``submit`` only pushes."""

    def __init__(self) -> None:
        self._tasks: deque[PendingTask] = deque()

    def push(self, task: PendingTask) -> None:
        self._tasks.append(task)

    def peek(self) -> PendingTask | None:
        return self._tasks[0] if self._tasks else None

    def pop(self) -> PendingTask:
        """Remove and return the head task; ``IndexError`` if empty."""
        return self._tasks.popleft()

    def __len__(self) -> int:
        return len(self._tasks)

    def __bool__(self) -> bool:
        return bool(self._tasks)
