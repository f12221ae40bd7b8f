"""Base abstract models and domain infrastructure for the order backend.

Provides:
- ``BaseModel``: UUIDv7 primary key + created_at / updated_at timestamps.
- ``OutboxEvent``: Transactional Outbox pattern for reliable domain events.

Outbox rows are written in the same transaction as the business data that
produced them.  Publishing to the in-process bus happens after commit
(see ``modules.core.outbox``); rows that fail are retried by the Celery
relay task until ``OUTBOX_MAX_RETRIES`` is reached.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

import uuid6
from django.db import models
from django.utils import timezone

# ---------------------------------------------------------------------------
# BaseModel
# ---------------------------------------------------------------------------


class BaseModel(models.Model):
    """Abstract base with UUIDv7 PK and timestamp bookkeeping."""

    id = models.UUIDField(
        primary_key=True,
        default=uuid6.uuid7,
        editable=False,
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True

    def save(self, *args, **kwargs) -> None:
        """Ensure ``updated_at`` is refreshed even when ``update_fields`` is passed."""
        update_fields = kwargs.get("update_fields")
        if update_fields is not None and "updated_at" not in update_fields:
            kwargs["update_fields"] = list(update_fields) + ["updated_at"]
        super().save(*args, **kwargs)


# ---------------------------------------------------------------------------
# Transactional Outbox
# ---------------------------------------------------------------------------


class EventStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    PROCESSING = "PROCESSING", "Processing"
    PUBLISHED = "PUBLISHED", "Published"
    FAILED = "FAILED", "Failed"


class OutboxEventQuerySet(models.QuerySet):
    def relayable(
        self, max_retries: int, stale_before: Optional[datetime] = None
    ) -> OutboxEventQuerySet:
        """Events still waiting for delivery, oldest first.

        With ``stale_before``, rows claimed by a relay that has not
        finished since then are offered again.
        """
        waiting = models.Q(status__in=[EventStatus.PENDING, EventStatus.FAILED])
        if stale_before is not None:
            waiting |= models.Q(status=EventStatus.PROCESSING, updated_at__lt=stale_before)
        return self.filter(waiting, retry_count__lt=max_retries).order_by("created_at")


class OutboxEvent(BaseModel):
    """Transactional Outbox for reliable domain event delivery.

    Workflow:
    1. Repository creates ``OutboxEvent`` inside ``transaction.atomic()``.
    2. On commit the new rows are claimed (``PROCESSING``) and published
       to the in-process bus.
    3. On success → ``mark_as_published()``.
    4. On failure → ``mark_as_failed(error)`` increments ``retry_count``;
       the relay task picks the row up again later.
    """

    event_type = models.CharField(max_length=100)
    payload = models.JSONField()
    aggregate_id = models.CharField(max_length=255)
    topic = models.CharField(max_length=100)
    status = models.CharField(
        max_length=20,
        choices=EventStatus.choices,
        default=EventStatus.PENDING,
    )
    processed_at = models.DateTimeField(null=True, blank=True, default=None)
    error_message = models.TextField(null=True, blank=True, default=None)  # noqa: DJ01
    retry_count = models.PositiveIntegerField(default=0)

    objects = OutboxEventQuerySet.as_manager()

    class Meta:
        db_table = "outbox_events"
        ordering = ["created_at"]
        indexes = [
            models.Index(
                fields=["event_type"],
                name="outbox_event_type_idx",
            ),
            models.Index(
                fields=["aggregate_id"],
                name="outbox_aggregate_id_idx",
            ),
            models.Index(
                fields=["status", "created_at"],
                name="outbox_status_created_idx",
            ),
        ]

    # ------------------------------------------------------------------
    # State transitions
    # ------------------------------------------------------------------

    def claim(self, max_retries: int, stale_before: Optional[datetime] = None) -> bool:
        """Take the row for delivery.

        A conditional update, so of two relays racing for the same row
        only one sees ``True``.
        """
        now = timezone.now()
        claimed = (
            OutboxEvent.objects.relayable(max_retries, stale_before)
            .filter(id=self.id)
            .update(status=EventStatus.PROCESSING, updated_at=now)
        )
        if claimed:
            self.status = EventStatus.PROCESSING
            self.updated_at = now
        return bool(claimed)

    def mark_as_published(self) -> None:

        """Mark event as successfully published."""
        self.status = EventStatus.PUBLISHED
        self.processed_at = timezone.now()
        self.error_message = None
        self.save(update_fields=["status", "processed_at", "error_message"])

    def mark_as_failed(self, error: str) -> None:
        """Mark event as failed and record the error."""
        self.status = EventStatus.FAILED
        self.error_message = error
        self.retry_count += 1
        self.save(update_fields=["status", "error_message", "retry_count"])

    # ------------------------------------------------------------------
    # Display
    # ------------------------------------------------------------------

    def __str__(self) -> str:
        return f"{self.event_type} [{self.status}] ({self.aggregate_id})"
