"""In-app notifications produced from domain events.

A notification targets either one user (``user_id``) or every user of a
role (``role``), never both.  Delivery beyond persistence (push, e-mail)
belongs to other services.
"""

from __future__ import annotations

from django.db import models

from modules.core.identity import Role
from modules.core.models import BaseModel


class NotificationQuerySet(models.QuerySet):
    def visible_to(self, user_id: str, role: str) -> NotificationQuerySet:
        """Notifications addressed to the user directly or to their role."""
        return self.filter(models.Q(user_id=user_id) | models.Q(role=role))

    def unread(self) -> NotificationQuerySet:
        return self.filter(is_read=False)


class Notification(BaseModel):
    user_id = models.CharField(max_length=64, null=True, blank=True, db_index=True)  # noqa: DJ01
    role = models.CharField(  # noqa: DJ01
        max_length=20, choices=Role.choices, null=True, blank=True
    )
    title = models.CharField(max_length=200)
    message = models.TextField()
    is_read = models.BooleanField(default=False)

    objects = NotificationQuerySet.as_manager()

    class Meta:
        db_table = "notifications"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["role", "is_read"], name="notif_role_read_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=(
                    models.Q(user_id__isnull=False, role__isnull=True)
                    | models.Q(user_id__isnull=True, role__isnull=False)
                ),
                name="notifications_single_target",
            ),
        ]

    def __str__(self) -> str:
        target = self.user_id or f"role:{self.role}"
        return f"{self.title} -> {target}"
