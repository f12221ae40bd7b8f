"""Django ORM implementation of the Product repository.

Error handling follows the Null Object pattern: look-ups return ``None``
instead of raising, and the service layer decides how to translate a
missing entity.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from django.core.exceptions import ValidationError

from modules.products.models import Product, ProductStatus
from modules.products.repositories.interfaces import IProductRepository


class ProductDjangoRepository(IProductRepository):
    """Concrete Product repository backed by Django ORM."""

    def get_by_id(self, id: str) -> Optional[Product]:
        """Retrieve a product by primary key.

        Returns ``None`` for non-existent or invalid IDs.
        """
        try:
            return Product.objects.filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[Product]:
        queryset = Product.objects.all()
        if filters:
            queryset = queryset.filter(**filters)
        return list(queryset)

    def get_many(self, ids: Iterable[UUID]) -> Dict[UUID, Product]:
        return {product.id: product for product in Product.objects.filter(id__in=list(ids))}

    def list_low_stock(self, vendor_id: str, threshold: int) -> List[Product]:
        return list(
            Product.objects.filter(
                vendor_id=vendor_id,
                status=ProductStatus.ACTIVE,
                stock__lte=threshold,
            ).order_by("stock", "name")
        )
