"""Stock-relevant projection of a catalog product.

The catalog subsystem owns product lifecycle, pricing and metadata.  This
service keeps only what order placement needs: the owning vendor, the
current price (snapshotted into order items) and the ``stock`` counter,
which only the Stock Ledger may mutate.

Business rules implemented:
- Stock can never be negative (database check constraint; the ledger's
  conditional update never produces a negative value).
- Inactive products cannot be ordered (enforced at service layer).
- SKU is unique and normalised to uppercase.
"""

from __future__ import annotations

from decimal import Decimal

import structlog
from django.core.validators import MinValueValidator
from django.db import models

from modules.core.models import BaseModel

logger = structlog.get_logger(__name__)


class ProductStatus(models.TextChoices):
    ACTIVE = "active", "Active"
    INACTIVE = "inactive", "Inactive"


class Product(BaseModel):
    """Product projection.

    ``vendor_id`` is the external identity id of the owning vendor; it is
    copied onto every order item so vendors can be scoped without joins.
    """

    vendor_id = models.CharField(max_length=64, db_index=True)
    sku = models.CharField(max_length=64, unique=True)
    name = models.CharField(max_length=255)
    price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.00"))],
    )
    stock = models.IntegerField(default=0)
    status = models.CharField(
        max_length=20,
        choices=ProductStatus.choices,
        default=ProductStatus.ACTIVE,
    )

    class Meta:
        db_table = "products"
        ordering = ["name"]
        indexes = [
            models.Index(fields=["status"], name="products_status_idx"),
            models.Index(fields=["vendor_id", "stock"], name="products_vendor_stock_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(stock__gte=0),
                name="products_stock_non_negative",
            ),
            models.CheckConstraint(
                condition=models.Q(price__gte=0),
                name="products_price_non_negative",
            ),
        ]

    @property
    def is_active(self) -> bool:
        return self.status == ProductStatus.ACTIVE

    def save(self, *args, **kwargs) -> None:
        if self.sku:
            self.sku = self.sku.strip().upper()
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.sku} - {self.name} (stock={self.stock})"
