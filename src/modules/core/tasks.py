"""Async tasks for the core module."""

import structlog
from celery import shared_task

from modules.core.outbox import publish_events

logger = structlog.get_logger(__name__)


@shared_task(name="core.relay_outbox_events")
def relay_outbox_events():
    """Retry delivery of outbox rows that were not published on commit."""
    published = publish_events()
    logger.info("outbox.relay_completed", published=published)
    return {"status": "ok", "published": published}
