"""Integration tests for standardized pagination."""

from __future__ import annotations

import pytest

from modules.notifications.models import Notification

pytestmark = pytest.mark.integration


@pytest.fixture()
def notification_batch():
    """Create a batch of role-wide notifications for pagination tests."""
    notifications = [
        Notification(role="csr", title=f"Notice {idx:03d}", message="Batch notice")
        for idx in range(1, 121)
    ]
    Notification.objects.bulk_create(notifications)
    return notifications


class TestPagination:
    def test_default_page_size(self, client_for, csr, notification_batch):
        response = client_for(csr).get("/api/v1/notifications/")
        assert response.status_code == 200
        assert response.data["count"] == 120
        assert len(response.data["results"]) == 20
        assert response.data["next"] is not None
        assert response.data["previous"] is None

    def test_custom_page_size(self, client_for, csr, notification_batch):
        response = client_for(csr).get("/api/v1/notifications/?page_size=50")
        assert response.status_code == 200
        assert len(response.data["results"]) == 50
        assert response.data["next"] is not None

    def test_max_page_size(self, client_for, csr, notification_batch):
        response = client_for(csr).get("/api/v1/notifications/?page_size=1000")
        assert response.status_code == 200
        assert len(response.data["results"]) == 100
        assert response.data["next"] is not None
