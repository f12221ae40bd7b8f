"""Notification inbox for the authenticated caller.

A caller sees notifications addressed to their id or to their role.
"""

from __future__ import annotations

import structlog
from django.core.exceptions import ValidationError
from rest_framework.decorators import action
from rest_framework.exceptions import NotFound
from rest_framework.mixins import ListModelMixin
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.viewsets import GenericViewSet

from modules.core.pagination import StandardResultsSetPagination
from modules.notifications.models import Notification
from modules.notifications.serializers import NotificationSerializer

logger = structlog.get_logger(__name__)


class NotificationViewSet(ListModelMixin, GenericViewSet):
    serializer_class = NotificationSerializer
    pagination_class = StandardResultsSetPagination

    def get_queryset(self):
        user = self.request.user
        return Notification.objects.visible_to(user.id, user.role)

    @action(detail=False, methods=["get"], url_path="unread-count")
    def unread_count(self, request: Request) -> Response:
        """GET /api/v1/notifications/unread-count/"""
        return Response({"unread": self.get_queryset().unread().count()})

    @action(detail=True, methods=["post"])
    def read(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/notifications/{pk}/read/"""
        try:
            notification = self.get_queryset().filter(id=pk).first()
        except (ValueError, ValidationError):
            notification = None
        if notification is None:
            raise NotFound("Notification not found.")
        if not notification.is_read:
            notification.is_read = True
            notification.save(update_fields=["is_read"])
            logger.info("notification.read", notification_id=str(notification.id))
        return Response(self.get_serializer(notification).data)
