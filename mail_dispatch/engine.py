"""DispatchEngine: composition root and single-consumer drain loop.

``submit`` never waits for delivery: it seeds a ``queued`` ledger entry,
appends a task and hands back an ``asyncio.Future``.  A single background
task wakes every ``QUEUE_TICK_SECONDS`` and, while the rate window has
capacity, pops at most one task and runs its whole attempt sequence before
the next tick.  Exactly one attempt sequence runs at a time, so the rate
limiter, circuit breaker and active-provider pointer need no further
locking.

Known limitations:

* Backoff sleeps block the next pop.  Under sustained provider failure
  throughput degrades to roughly one task per few backoff intervals.
* ``shutdown()`` lets an in-flight sequence finish but leaves still-queued
  tasks with unresolved futures.
* After a successful send the ledger and the idempotency cache are written
  in two steps; a crash between them resolves nothing and caches nothing,
  so a caller retrying with the same key will be delivered again.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
import uuid
from collections.abc import Awaitable, Callable
from typing import Any

from mail_dispatch.audit import AuditEvent, AuditSink, JsonlAuditSink, NullAuditSink
from mail_dispatch.core.config import Settings
from mail_dispatch.core.errors import MailDispatchError
from mail_dispatch.ledger import IdempotencyCache, StatusLedger
from mail_dispatch.models.status import DeliveryResult, DeliveryStatus, StatusNotFound, StatusRecord, utcnow
from mail_dispatch.providers import Provider, ProviderRegistry, default_providers
from mail_dispatch.queue import DispatchQueue, PendingTask
from mail_dispatch.resilience.circuit_breaker import CircuitBreaker
from mail_dispatch.resilience.rate_limiter import RateLimiter
from mail_dispatch.resilience.retry import RetryEngine

logger = logging.getLogger(__name__)
_audit_logger = logging.getLogger("mail_dispatch.audit")


def new_tracking_id() -> str:
    return f"email-{int(time.time() * 1000)}-{uuid.uuid4().hex[:12]}"


class DispatchEngine:
    """Accepts delivery requests and drains them against failover providers.

    Args:
        settings:    Service settings; defaults to ``Settings()``.
        providers:   A ``ProviderRegistry`` or a list of providers.  Defaults
                     to the stock mock providers.
        audit_sink:  Where terminal outcomes are recorded.  Defaults to a
                     ``JsonlAuditSink`` at ``AUDIT_LOG_PATH`` (or nothing when
                     that setting is empty).
        sleep:       Backoff sleep, injectable for tests.

    Usage::

        async with DispatchEngine(settings) as engine:
            result = await engine.submit(message, idempotency_key="order-42")
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        providers: ProviderRegistry | list[Provider] | None = None,
        audit_sink: AuditSink | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.settings = settings or Settings()

        if isinstance(providers, ProviderRegistry):
            self.providers = providers
        else:
            self.providers = ProviderRegistry(default_providers() if providers is None else providers)

        if audit_sink is None:
            audit_sink = JsonlAuditSink(self.settings.AUDIT_LOG_PATH) if self.settings.AUDIT_LOG_PATH else NullAuditSink()
        self.audit_sink = audit_sink

        self.ledger = StatusLedger()
        self.idempotency_cache = IdempotencyCache()
        self.queue = DispatchQueue()
        self.rate_limiter = RateLimiter(
            limit=self.settings.RATE_LIMIT,
            window_seconds=self.settings.RATE_WINDOW_SECONDS,
        )
        self.circuit_breaker = CircuitBreaker(
            failure_threshold=self.settings.CIRCUIT_BREAKER_THRESHOLD,
            cooldown=self.settings.CIRCUIT_BREAKER_COOLDOWN_SECONDS,
        )
        self.retry_engine = RetryEngine(
            self.providers,
            self.circuit_breaker,
            self.ledger,
            max_attempts=self.settings.DISPATCH_MAX_ATTEMPTS,
            backoff_base=self.settings.DISPATCH_BACKOFF_BASE_SECONDS,
            provider_timeout=self.settings.PROVIDER_TIMEOUT_SECONDS,
            sleep=sleep,
        )

        # Idempotency keys whose first submission has not reached a terminal state
        self._inflight: dict[str, asyncio.Future[DeliveryResult]] = {}
        self._audit_tasks: set[asyncio.Task] = set()
        self._tick_lock = asyncio.Lock()
        self._stopping = asyncio.Event()
        self._drain_task: asyncio.Task | None = None

    # ── Lifecycle ────────────────────────────────────────────────────

    @property
    def running(self) -> bool:
        return self._drain_task is not None and not self._drain_task.done()

    def start(self) -> None:
        """Spawn the drain loop on the running event loop (no-op if running)."""
        if self.running:
            return
        self._stopping.clear()
        self._drain_task = asyncio.create_task(self._drain_loop(), name="mail-dispatch-drain")
        logger.info(
            "Drain loop started (tick=%.3fs, rate=%d/%.0fs, providers=%s)",
            self.settings.QUEUE_TICK_SECONDS,
            self.rate_limiter.limit,
            self.rate_limiter.window_seconds,
            self.providers.names(),
        )

    async def shutdown(self) -> None:
        """Stop ticking; wait for an in-flight attempt sequence to finish.

        Tasks still queued are left in place and their futures stay
        unresolved.
        """
        if self._drain_task is not None:
            self._stopping.set()
            await self._drain_task
            self._drain_task = None

        if self.queue:
            logger.warning(
                "Drain loop stopped with %d task(s) still queued; their handles remain unresolved",
                len(self.queue),
            )
        if self._audit_tasks:
            await asyncio.gather(*self._audit_tasks, return_exceptions=True)

    async def __aenter__(self) -> DispatchEngine:
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.shutdown()

    # ── Public operations ────────────────────────────────────────────

    def submit(self, message: Any, idempotency_key: str | None = None) -> asyncio.Future[DeliveryResult]:
        """Accept *message* for delivery and return a single-fire handle.

        A key with a cached success returns an already-resolved handle with
        the cached snapshot; a key whose first submission is still pending
        returns a view of that submission's handle.  Neither case mints a
        tracking id.  Cancelling a returned handle does not cancel delivery.
        """
        loop = asyncio.get_running_loop()

        if idempotency_key:
            cached = self.idempotency_cache.get(idempotency_key)
            if cached is not None:
                logger.debug("Idempotent replay for key %s -> %s", idempotency_key, cached.tracking_id)
                replay: asyncio.Future[DeliveryResult] = loop.create_future()
                replay.set_result(cached)
                return replay
            inflight = self._inflight.get(idempotency_key)
            if inflight is not None:
                return asyncio.shield(inflight)

        tracking_id = new_tracking_id()
        while tracking_id in self.ledger:
            tracking_id = new_tracking_id()
        self.ledger.create(tracking_id)

        future: asyncio.Future[DeliveryResult] = loop.create_future()
        if idempotency_key:
            self._inflight[idempotency_key] = future
        self.queue.push(PendingTask(message, tracking_id, future, idempotency_key))
        logger.debug("Queued %s (depth=%d)", tracking_id, len(self.queue))
        return asyncio.shield(future)

    def status(self, tracking_id: str) -> DeliveryResult | StatusNotFound:
        """Current snapshot for *tracking_id*; ``StatusNotFound`` if unknown."""
        record = self.ledger.get(tracking_id)
        if record is None:
            return StatusNotFound(tracking_id)
        return DeliveryResult.from_record(tracking_id, record)

    def queue_depth(self) -> int:
        return len(self.queue)

    # ── Drain loop ───────────────────────────────────────────────────

    async def _drain_loop(self) -> None:
        while not self._stopping.is_set():
            await self.tick()
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(self._stopping.wait(), timeout=self.settings.QUEUE_TICK_SECONDS)
        logger.info("Drain loop stopped")

    async def tick(self) -> DeliveryResult | None:
        """Run one drain step.

        Rolls the rate window, then pops and fully processes the head task if
        the queue is non-empty and the window has capacity.  Returns the
        terminal result, or ``None`` when nothing was popped.  Concurrent
        calls are serialized.
        """
        async with self._tick_lock:
            self.rate_limiter.roll_window()
            if not self.queue or not self.rate_limiter.has_capacity():
                return None
            task = self.queue.pop()
            self.rate_limiter.acquire()
            return await self._process(task)

    async def _process(self, task: PendingTask) -> DeliveryResult:
        tracking_id = task.tracking_id
        self.ledger.update(tracking_id, status=DeliveryStatus.SENDING)

        try:
            outcome = await self.retry_engine.attempt(task.message, tracking_id)
        except MailDispatchError as exc:
            record = self.ledger.update(tracking_id, status=DeliveryStatus.FAILED, error=str(exc))
            logger.info("Delivery %s failed after %d attempt(s): %s", tracking_id, record.attempts, exc)
        except Exception as exc:
            logger.exception("Unexpected error while delivering %s", tracking_id)
            record = self.ledger.update(tracking_id, status=DeliveryStatus.FAILED, error=str(exc) or type(exc).__name__)
        else:
            record = self.ledger.update(
                tracking_id,
                status=DeliveryStatus.SENT,
                provider=outcome.provider,
                sent_at=utcnow(),
            )
            logger.info("Delivered %s via %s after %d attempt(s)", tracking_id, outcome.provider, outcome.attempts)

        return self._finish(task, record)

    def _finish(self, task: PendingTask, record: StatusRecord) -> DeliveryResult:
        result = DeliveryResult.from_record(task.tracking_id, record)
        key = task.idempotency_key
        if key:
            if result.status == DeliveryStatus.SENT:
                self.idempotency_cache.put(key, result)
            if self._inflight.get(key) is task.future:
                del self._inflight[key]

        self._audit(result)
        task.resolve(result)
        return result

    def _audit(self, result: DeliveryResult) -> None:
        audit_task = asyncio.create_task(self._record_audit(AuditEvent.from_result(result)))
        self._audit_tasks.add(audit_task)
        audit_task.add_done_callback(self._audit_tasks.discard)

    async def _record_audit(self, event: AuditEvent) -> None:
        try:
            await self.audit_sink.record(event)
        except Exception:
            _audit_logger.warning("Audit sink failed for %s, continuing", event.tracking_id, exc_info=True)
