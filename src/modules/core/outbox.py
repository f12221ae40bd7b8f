"""Outbox writer and publisher.

``record_events`` is called by repositories inside their transaction.
``publish_events`` is scheduled with ``transaction.on_commit`` so handlers
only ever observe committed state, and is also the body of the Celery
relay task that retries undelivered rows.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Iterable, List, Optional, Sequence
from uuid import UUID

import structlog
from django.conf import settings
from django.db import transaction
from django.utils import timezone

from modules.core.models import OutboxEvent
from shared.domain.events import DomainEvent
from shared.infrastructure.bus import event_bus

logger = structlog.get_logger(__name__)


def record_events(events: Iterable[DomainEvent], topic: str) -> List[OutboxEvent]:
    """Persist events in the current transaction and publish them on commit."""
    rows = [
        OutboxEvent.objects.create(
            event_type=event.event_name,
            aggregate_id=str(event.aggregate_id),
            payload=event.to_payload(),
            topic=topic,
        )
        for event in events
    ]
    if rows:
        event_ids = [row.id for row in rows]
        transaction.on_commit(lambda: publish_events(event_ids))
        logger.info("outbox.recorded", topic=topic, event_count=len(rows))
    return rows


def publish_events(event_ids: Optional[Sequence[UUID]] = None) -> int:
    """Publish outbox rows to the in-process bus.

    With ``event_ids`` only those rows are published; otherwise every
    relayable row is.  Each row is claimed before it is handed to the
    bus, so a relay started while another is still delivering (a handler
    that commits more events, or the periodic task) skips it.  Returns
    the number of rows published successfully.  Handler errors are
    recorded on the row and never raised.
    """
    max_retries = settings.OUTBOX_MAX_RETRIES
    stale_before = timezone.now() - timedelta(seconds=settings.OUTBOX_CLAIM_TIMEOUT)
    queryset = OutboxEvent.objects.relayable(max_retries, stale_before)
    if event_ids is not None:
        queryset = queryset.filter(id__in=list(event_ids))

    published = 0
    for row in queryset:
        log = logger.bind(
            outbox_id=str(row.id),
            event_type=row.event_type,
            aggregate_id=row.aggregate_id,
        )
        if not row.claim(max_retries, stale_before):
            log.debug("outbox.already_claimed")
            continue
        try:

            event = DomainEvent.from_payload(row.event_type, row.payload)
            event_bus.publish(event)
        except Exception as exc:
            log.exception("outbox.publish_failed", retry_count=row.retry_count + 1)
            row.mark_as_failed(str(exc))
            continue
        row.mark_as_published()
        published += 1
    return published
