"""Unit tests for the OutboxEvent model.

Covers:
- Defaults of a freshly recorded event.
- mark_as_published() and mark_as_failed(error) transitions.
- The ``relayable`` queryset and ``claim()`` used by the relay.
"""

from __future__ import annotations

import uuid
from datetime import timedelta

import pytest
from freezegun import freeze_time

from modules.core.models import EventStatus, OutboxEvent

pytestmark = pytest.mark.unit


def _make_event(**overrides) -> OutboxEvent:
    defaults = {
        "event_type": "OrderCreated",
        "payload": {"order_number": "ORD-20260101-ABCDEF", "total_amount": "99.90"},
        "aggregate_id": "0190aaaa-0000-7000-8000-000000000001",
        "topic": "orders",
    }
    defaults.update(overrides)
    return OutboxEvent.objects.create(**defaults)


class TestOutboxEventCreation:
    def test_recorded_event_is_pending(self):
        event = _make_event()
        event.refresh_from_db()

        assert event.status == EventStatus.PENDING
        assert event.processed_at is None
        assert event.error_message is None
        assert event.retry_count == 0
        assert event.payload["order_number"] == "ORD-20260101-ABCDEF"

    def test_id_is_uuid7(self):
        event = _make_event()
        assert isinstance(event.id, uuid.UUID)
        assert event.id.version == 7


class TestOutboxEventTransitions:
    def test_mark_as_published_clears_previous_error(self):
        event = _make_event()
        event.mark_as_failed("handler exploded")

        event.mark_as_published()
        event.refresh_from_db()

        assert event.status == EventStatus.PUBLISHED
        assert event.processed_at is not None
        assert event.error_message is None
        assert event.retry_count == 1

    def test_mark_as_failed_counts_attempts(self):
        event = _make_event()
        event.mark_as_failed("Error 1")
        event.mark_as_failed("Error 2")
        event.refresh_from_db()

        assert event.status == EventStatus.FAILED
        assert event.retry_count == 2
        assert event.error_message == "Error 2"

    def test_transitions_refresh_updated_at(self):
        with freeze_time("2026-01-01 12:00:00") as frozen:
            event = _make_event()
            original = event.updated_at
            frozen.tick(timedelta(seconds=5))

            event.mark_as_failed("Something broke")
            event.refresh_from_db()

        assert event.updated_at == original + timedelta(seconds=5)

    def test_str_representation(self):
        event = _make_event(event_type="LowStockDetected", aggregate_id="product-456")
        assert str(event) == "LowStockDetected [PENDING] (product-456)"


class TestRelayableQuerySet:
    def test_pending_and_failed_below_the_retry_limit(self):
        with freeze_time("2026-01-01 12:00:00", auto_tick_seconds=1):
            pending = _make_event()
            failed = _make_event()
            failed.mark_as_failed("once")
            exhausted = _make_event()
            for attempt in range(3):
                exhausted.mark_as_failed(f"attempt {attempt}")
            _make_event().mark_as_published()

        relayable = list(OutboxEvent.objects.relayable(max_retries=3))

        assert relayable == [pending, failed]
        assert exhausted not in relayable

    def test_oldest_first(self):
        with freeze_time("2026-01-01 12:00:00") as frozen:
            older = _make_event()
            frozen.tick(timedelta(minutes=1))
            newer = _make_event()

        assert list(OutboxEvent.objects.relayable(max_retries=5)) == [older, newer]

    def test_claimed_rows_are_held_back_until_stale(self):
        with freeze_time("2026-01-01 12:00:00") as frozen:
            claimed = _make_event()
            claimed.claim(max_retries=5)
            frozen.tick(timedelta(minutes=10))

            assert list(OutboxEvent.objects.relayable(max_retries=5)) == []
            fresh = list(
                OutboxEvent.objects.relayable(
                    max_retries=5, stale_before=claimed.updated_at - timedelta(seconds=1)
                )
            )
            stale = list(
                OutboxEvent.objects.relayable(
                    max_retries=5, stale_before=claimed.updated_at + timedelta(seconds=1)
                )
            )

        assert fresh == []
        assert stale == [claimed]


class TestClaim:
    def test_only_the_first_claim_wins(self):
        event = _make_event()
        rival = OutboxEvent.objects.get(id=event.id)

        assert event.claim(max_retries=5) is True
        assert rival.claim(max_retries=5) is False
        event.refresh_from_db()
        assert event.status == EventStatus.PROCESSING

    def test_published_event_cannot_be_claimed(self):
        event = _make_event()
        event.mark_as_published()
        assert event.claim(max_retries=5) is False

    def test_failed_delivery_releases_the_claim(self):
        event = _make_event()
        event.claim(max_retries=5)
        event.mark_as_failed("handler exploded")

        assert OutboxEvent.objects.get(id=event.id).claim(max_retries=5) is True
