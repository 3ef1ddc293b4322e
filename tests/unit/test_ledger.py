"""Tests for StatusLedger and IdempotencyCache."""

import pytest

from mail_dispatch.ledger import IdempotencyCache, StatusLedger
from mail_dispatch.models.status import DeliveryResult, DeliveryStatus, StatusRecord


class TestStatusLedger:
    def test_create_seeds_queued_record(self) -> None:
        ledger = StatusLedger()
        record = ledger.create("email-1")
        assert record.status == DeliveryStatus.QUEUED
        assert ledger.get("email-1") is record
        assert "email-1" in ledger
        assert len(ledger) == 1

    def test_create_rejects_duplicate_id(self) -> None:
        ledger = StatusLedger()
        ledger.create("email-1")
        with pytest.raises(ValueError, match="already exists"):
            ledger.create("email-1")

    def test_get_unknown_returns_none(self) -> None:
        assert StatusLedger().get("missing") is None

    def test_update_replaces_whole_record(self) -> None:
        ledger = StatusLedger()
        before = ledger.create("email-1")
        after = ledger.update("email-1", status=DeliveryStatus.SENDING, attempts=1)
        assert after is not before
        assert before.status == DeliveryStatus.QUEUED
        assert after.status == DeliveryStatus.SENDING
        assert after.created_at == before.created_at

    def test_update_accepts_status_value_string(self) -> None:
        ledger = StatusLedger()
        ledger.create("email-1")
        assert ledger.update("email-1", status="sending").status == DeliveryStatus.SENDING

    def test_forward_transitions(self) -> None:
        ledger = StatusLedger()
        ledger.create("email-1")
        ledger.update("email-1", status=DeliveryStatus.SENDING)
        assert ledger.update("email-1", status=DeliveryStatus.SENT).status == DeliveryStatus.SENT

    def test_status_cannot_regress(self) -> None:
        ledger = StatusLedger()
        ledger.create("email-1")
        ledger.update("email-1", status=DeliveryStatus.SENDING)
        with pytest.raises(ValueError, match="Illegal status transition"):
            ledger.update("email-1", status=DeliveryStatus.QUEUED)

    def test_terminal_status_is_final(self) -> None:
        ledger = StatusLedger()
        ledger.create("email-1")
        ledger.update("email-1", status=DeliveryStatus.FAILED)
        with pytest.raises(ValueError):
            ledger.update("email-1", status=DeliveryStatus.SENT)

    def test_attempts_cannot_decrease(self) -> None:
        ledger = StatusLedger()
        ledger.create("email-1")
        ledger.update("email-1", attempts=2)
        with pytest.raises(ValueError, match="Attempts may not decrease"):
            ledger.update("email-1", attempts=1)

    def test_update_unknown_raises_key_error(self) -> None:
        with pytest.raises(KeyError):
            StatusLedger().update("missing", attempts=1)


class TestIdempotencyCache:
    def _sent(self, tracking_id: str = "email-1") -> DeliveryResult:
        return DeliveryResult.from_record(tracking_id, StatusRecord(status=DeliveryStatus.SENT, provider="ProviderA"))

    def test_put_and_get(self) -> None:
        cache = IdempotencyCache()
        result = self._sent()
        cache.put("key-1", result)
        assert cache.get("key-1") == result
        assert "key-1" in cache
        assert len(cache) == 1

    def test_missing_key(self) -> None:
        assert IdempotencyCache().get("nope") is None

    def test_failed_results_are_not_cacheable(self) -> None:
        failed = DeliveryResult.from_record("email-1", StatusRecord(status=DeliveryStatus.FAILED, error="x"))
        with pytest.raises(ValueError, match="Only sent results"):
            IdempotencyCache().put("key-1", failed)
