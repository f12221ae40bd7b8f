"""Unit tests for outbox recording, on-commit publishing and the relay task."""

from __future__ import annotations

from unittest.mock import patch
from uuid import uuid4

import pytest
from freezegun import freeze_time

from modules.core.models import EventStatus, OutboxEvent
from modules.core.outbox import publish_events, record_events
from modules.core.tasks import relay_outbox_events
from modules.products.events import LowStockDetected

pytestmark = pytest.mark.unit


def _low_stock_event() -> LowStockDetected:
    return LowStockDetected(
        aggregate_id=uuid4(),
        vendor_id="vendor-1",
        sku="SKU-1",
        name="Widget",
        stock=2,
        threshold=5,
    )


class TestRecordEvents:
    def test_rows_are_written_pending(self):
        with patch("modules.core.outbox.transaction.on_commit"):
            rows = record_events([_low_stock_event()], topic="inventory")

        row = OutboxEvent.objects.get(id=rows[0].id)
        assert row.event_type == "LowStockDetected"
        assert row.topic == "inventory"
        assert row.status == EventStatus.PENDING
        assert row.payload["sku"] == "SKU-1"

    def test_rows_are_published_on_commit(self, django_capture_on_commit_callbacks):
        with patch("modules.core.outbox.event_bus") as bus:
            with django_capture_on_commit_callbacks(execute=True):
                rows = record_events([_low_stock_event()], topic="inventory")

        bus.publish.assert_called_once()
        rows[0].refresh_from_db()
        assert rows[0].status == EventStatus.PUBLISHED
        assert rows[0].processed_at is not None

    def test_nothing_recorded_for_empty_list(self):
        assert record_events([], topic="inventory") == []
        assert not OutboxEvent.objects.exists()


class TestPublishEvents:
    def _pending_row(self) -> OutboxEvent:
        with patch("modules.core.outbox.transaction.on_commit"):
            return record_events([_low_stock_event()], topic="inventory")[0]

    def test_handler_error_marks_row_failed(self):
        row = self._pending_row()
        with patch("modules.core.outbox.event_bus") as bus:
            bus.publish.side_effect = RuntimeError("handler exploded")
            published = publish_events()

        row.refresh_from_db()
        assert published == 0
        assert row.status == EventStatus.FAILED
        assert row.retry_count == 1
        assert "handler exploded" in row.error_message

    def test_failed_row_is_retried(self):
        row = self._pending_row()
        row.mark_as_failed("first attempt")

        with patch("modules.core.outbox.event_bus"):
            published = publish_events()

        row.refresh_from_db()
        assert published == 1
        assert row.status == EventStatus.PUBLISHED

    def test_rows_past_max_retries_are_skipped(self, settings):
        settings.OUTBOX_MAX_RETRIES = 1
        row = self._pending_row()
        row.mark_as_failed("gave up")

        with patch("modules.core.outbox.event_bus") as bus:
            published = publish_events()

        assert published == 0
        bus.publish.assert_not_called()

    def test_published_rows_are_not_sent_again(self):
        row = self._pending_row()
        row.mark_as_published()

        with patch("modules.core.outbox.event_bus") as bus:
            assert publish_events() == 0
        bus.publish.assert_not_called()

    def test_row_claimed_by_a_running_relay_is_skipped(self):
        row = self._pending_row()
        assert row.claim(max_retries=5)

        with patch("modules.core.outbox.event_bus") as bus:
            assert publish_events() == 0
        bus.publish.assert_not_called()

    def test_relay_started_during_delivery_sends_each_row_once(self):
        with patch("modules.core.outbox.transaction.on_commit"):
            rows = record_events([_low_stock_event(), _low_stock_event()], topic="inventory")
        delivered = []

        def deliver(event):
            delivered.append(event.aggregate_id)
            if len(delivered) == 1:
                publish_events()

        with patch("modules.core.outbox.event_bus") as bus:
            bus.publish.side_effect = deliver
            publish_events()

        assert sorted(map(str, delivered)) == sorted(row.aggregate_id for row in rows)
        assert set(OutboxEvent.objects.values_list("status", flat=True)) == {
            EventStatus.PUBLISHED
        }

    def test_stale_claim_is_delivered_again(self, settings):
        settings.OUTBOX_CLAIM_TIMEOUT = 300
        with freeze_time("2026-01-01 12:00:00"):
            row = self._pending_row()
            row.claim(max_retries=5)

        with freeze_time("2026-01-01 12:10:00"):
            with patch("modules.core.outbox.event_bus") as bus:
                assert publish_events() == 1

        bus.publish.assert_called_once()
        row.refresh_from_db()
        assert row.status == EventStatus.PUBLISHED



class TestRelayTask:
    def test_relay_publishes_pending_rows(self):
        with patch("modules.core.outbox.transaction.on_commit"):
            record_events([_low_stock_event(), _low_stock_event()], topic="inventory")

        with patch("modules.core.outbox.event_bus"):
            result = relay_outbox_events.delay()

        assert result.successful()
        assert result.result == {"status": "ok", "published": 2}
        assert not OutboxEvent.objects.relayable(5).exists()
