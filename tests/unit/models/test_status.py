"""Tests for delivery status records and result snapshots."""

from datetime import UTC, datetime

import pytest

from mail_dispatch.models.status import DeliveryResult, DeliveryStatus, StatusNotFound, StatusRecord


class TestDeliveryStatus:
    def test_values(self) -> None:
        assert [s.value for s in DeliveryStatus] == ["queued", "sending", "sent", "failed"]

    def test_terminal_states(self) -> None:
        assert DeliveryStatus.SENT.is_terminal
        assert DeliveryStatus.FAILED.is_terminal
        assert not DeliveryStatus.QUEUED.is_terminal
        assert not DeliveryStatus.SENDING.is_terminal

    def test_ranks_are_ordered(self) -> None:
        assert DeliveryStatus.QUEUED.rank < DeliveryStatus.SENDING.rank < DeliveryStatus.SENT.rank
        assert DeliveryStatus.SENT.rank == DeliveryStatus.FAILED.rank


class TestStatusRecord:
    def test_defaults(self) -> None:
        record = StatusRecord()
        assert record.status == DeliveryStatus.QUEUED
        assert record.attempts == 0
        assert record.created_at.tzinfo is not None
        assert record.sent_at is None and record.provider is None and record.error is None

    def test_is_immutable(self) -> None:
        record = StatusRecord()
        with pytest.raises(AttributeError):
            record.attempts = 5  # type: ignore[misc]


class TestDeliveryResult:
    def test_from_record_copies_fields(self) -> None:
        sent_at = datetime(2024, 1, 1, tzinfo=UTC)
        record = StatusRecord(status=DeliveryStatus.SENT, attempts=2, sent_at=sent_at, provider="ProviderB")
        result = DeliveryResult.from_record("email-1", record)
        assert result.tracking_id == "email-1"
        assert result.status == DeliveryStatus.SENT
        assert result.attempts == 2
        assert result.sent_at == sent_at
        assert result.provider == "ProviderB"

    def test_to_dict_omits_unset_fields(self) -> None:
        result = DeliveryResult.from_record("email-1", StatusRecord())
        data = result.to_dict()
        assert data["status"] == "queued"
        assert set(data) == {"tracking_id", "status", "attempts", "created_at"}

    def test_to_dict_failed_carries_error(self) -> None:
        record = StatusRecord(status=DeliveryStatus.FAILED, attempts=3, error="Circuit breaker tripped")
        data = DeliveryResult.from_record("email-2", record).to_dict()
        assert data["error"] == "Circuit breaker tripped"
        assert "provider" not in data


class TestStatusNotFound:
    def test_soft_fail_payload(self) -> None:
        missing = StatusNotFound("nope")
        assert missing.tracking_id == "nope"
        assert missing.to_dict() == {"error": "invalid trackingId"}
