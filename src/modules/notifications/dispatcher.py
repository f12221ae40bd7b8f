"""Fire-and-continue notification dispatcher.

``notify`` persists a notification and returns it.  Storage failures are
logged and swallowed: a notification is a side channel and must never
undo the business operation that triggered it.
"""

from __future__ import annotations

from typing import Optional

import structlog
from django.db import DatabaseError, transaction

from modules.notifications.models import Notification

logger = structlog.get_logger(__name__)


class NotificationDispatcher:
    def notify(
        self,
        title: str,
        message: str,
        *,
        user_id: Optional[str] = None,
        role: Optional[str] = None,
    ) -> Optional[Notification]:
        """Store a notification for ``user_id`` or for everyone with ``role``.

        Exactly one target must be given.  Returns ``None`` when storing
        failed.
        """
        if (user_id is None) == (role is None):
            raise ValueError("Exactly one of user_id or role is required.")

        log = logger.bind(title=title, user_id=user_id, role=role)
        try:
            with transaction.atomic():
                notification = Notification.objects.create(
                    user_id=user_id,
                    role=role,
                    title=title,
                    message=message,
                )
        except DatabaseError:
            log.exception("notification.dispatch_failed")
            return None

        log.info("notification.dispatched", notification_id=str(notification.id))
        return notification


dispatcher = NotificationDispatcher()
