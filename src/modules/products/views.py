"""Vendor-facing product views.

Only the low-stock report lives here; catalog CRUD belongs to the
catalog service.
"""

from __future__ import annotations

from django.conf import settings
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework.exceptions import ValidationError
from rest_framework.mixins import ListModelMixin
from rest_framework.viewsets import GenericViewSet

from modules.core.permissions import IsVendor
from modules.products.repositories.django_repository import ProductDjangoRepository
from modules.products.serializers import LowStockProductSerializer


@extend_schema(
    parameters=[
        OpenApiParameter(
            "threshold",
            OpenApiTypes.INT,
            description="Defaults to LOW_STOCK_THRESHOLD.",
        )
    ]
)
class VendorLowStockViewSet(ListModelMixin, GenericViewSet):
    """GET /api/v1/vendor/products/low-stock/

    Lists the caller's active products at or below the threshold.
    """

    permission_classes = [IsVendor]
    serializer_class = LowStockProductSerializer

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._repo = ProductDjangoRepository()

    def get_queryset(self):
        raw = self.request.query_params.get("threshold")
        threshold = settings.LOW_STOCK_THRESHOLD
        if raw is not None:
            try:
                threshold = int(raw)
            except ValueError:
                raise ValidationError({"threshold": "Must be an integer."})
            if threshold < 0:
                raise ValidationError({"threshold": "Must not be negative."})
        return self._repo.list_low_stock(self.request.user.id, threshold)
