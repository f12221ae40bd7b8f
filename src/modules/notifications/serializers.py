"""Notification DRF serializers."""

from __future__ import annotations

from rest_framework import serializers

from modules.notifications.models import Notification


class NotificationSerializer(serializers.ModelSerializer):
    class Meta:
        model = Notification
        fields = ["id", "user_id", "role", "title", "message", "is_read", "created_at"]
        read_only_fields = fields
