"""Order, OrderItem, OrderStatusHistory and CancelRequest models.

Business rules implemented:
- Order number auto-generated as human-readable identifier, immutable.
- Idempotency via ``idempotency_key`` unique constraint.
- OrderItem snapshots product price and vendor at creation time.
- ``total_amount`` and item ``total_price`` are computed, never stored.
- ``version`` is bumped on every write; stale writers are rejected by the
  repository (optimistic concurrency).
- Each status change generates an append-only history record.
- At most one Pending cancel request per order (partial unique index).
"""

from __future__ import annotations

import secrets
from decimal import Decimal
from typing import Any, List

import structlog
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone

from modules.core.models import BaseModel
from modules.orders.constants import (
    DISPATCHED_ITEM_STATES,
    DISPATCHED_STATES,
    ORDER_NUMBER_MAX_RETRIES,
    CancelRequestStatus,
    OrderStatus,
    PaymentStatus,
)
from modules.products.ledger import StockLine
from shared.domain.events import DomainEventMixin

logger = structlog.get_logger(__name__)


class Order(DomainEventMixin, BaseModel):
    """Order aggregate root.

    ``order_number`` is a human-readable identifier auto-generated on first
    save (format: ``ORD-YYYYMMDD-XXXXXX``).  The UUIDv7 ``id`` is used for
    all internal references and API lookups.

    ``customer_id`` is the identity-provider id of the owning customer.
    """

    order_number: models.CharField = models.CharField(
        max_length=20, unique=True, editable=False
    )
    customer_id: models.CharField = models.CharField(max_length=64, db_index=True)
    status: models.CharField = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
        default=OrderStatus.PENDING,
    )
    payment_status: models.CharField = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
    )
    shipping_address: models.TextField = models.TextField()
    shipping_fee: models.DecimalField = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal("0.00"),
        validators=[MinValueValidator(Decimal("0.00"))],
    )
    note: models.TextField = models.TextField(blank=True, default="")
    version: models.PositiveIntegerField = models.PositiveIntegerField(default=1)
    idempotency_key: models.CharField = models.CharField(
        max_length=255,
        unique=True,
        null=True,
        blank=True,
    )

    class Meta:
        db_table = "orders"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status"], name="orders_status_idx"),
            models.Index(fields=["-created_at"], name="orders_created_idx"),
        ]

    # ------------------------------------------------------------------
    # State helpers
    # ------------------------------------------------------------------

    @property
    def is_dispatched(self) -> bool:
        """True once the order or any of its items has left the warehouse."""
        return self.status in DISPATCHED_STATES or any(
            item.status in DISPATCHED_ITEM_STATES for item in self.items.all()
        )

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @property
    def total_amount(self) -> Decimal:
        """Sum of item totals.  Uses the prefetched items when present."""
        return sum((item.total_price for item in self.items.all()), Decimal("0.00"))

    def stock_lines(self) -> List[StockLine]:
        return [StockLine(item.product_id, item.quantity) for item in self.items.all()]

    def undispatched_stock_lines(self) -> List[StockLine]:
        """Lines whose stock is still in the warehouse."""
        return [
            StockLine(item.product_id, item.quantity)
            for item in self.items.all()
            if item.status not in DISPATCHED_ITEM_STATES
        ]

    def vendor_ids(self) -> set[str]:
        return {item.vendor_id for item in self.items.all()}

    # ------------------------------------------------------------------
    # Order number generation
    # ------------------------------------------------------------------

    @staticmethod
    def generate_order_number() -> str:
        """Generate a human-readable order number: ``ORD-YYYYMMDD-XXXXXX``."""
        now = timezone.now()
        suffix = secrets.token_hex(3).upper()
        return f"ORD-{now:%Y%m%d}-{suffix}"

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, *args: Any, **kwargs: Any) -> None:
        if not self.order_number:
            for attempt in range(ORDER_NUMBER_MAX_RETRIES):
                candidate = self.generate_order_number()
                if not Order.objects.filter(order_number=candidate).exists():
                    self.order_number = candidate
                    break
            else:
                raise RuntimeError(
                    f"Failed to generate unique order_number after "
                    f"{ORDER_NUMBER_MAX_RETRIES} attempts"
                )
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.order_number} ({self.status})"


class OrderItem(BaseModel):
    """Line item linking an Order to a Product.

    ``unit_price`` and ``vendor_id`` are **snapshots** taken when the item
    is created.  Later catalog changes never touch them.  ``status`` tracks
    the fulfilment of this line by its vendor.
    """

    order: models.ForeignKey = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="items",
    )
    product: models.ForeignKey = models.ForeignKey(
        "products.Product",
        on_delete=models.PROTECT,
        related_name="order_items",
    )
    vendor_id: models.CharField = models.CharField(max_length=64, db_index=True)
    quantity: models.PositiveIntegerField = models.PositiveIntegerField(
        default=1,
        validators=[MinValueValidator(1)],
    )
    unit_price: models.DecimalField = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.00"))],
    )
    status: models.CharField = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
        default=OrderStatus.PENDING,
    )

    class Meta:
        db_table = "order_items"
        ordering = ["created_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gte=1),
                name="order_items_quantity_positive",
            ),
            models.UniqueConstraint(
                fields=["order", "product"],
                name="order_items_unique_product",
            ),
        ]

    def clean(self) -> None:
        super().clean()
        if self.quantity is not None and self.quantity < 1:
            raise ValidationError({"quantity": "Quantity must be at least 1."})

    @property
    def total_price(self) -> Decimal:
        return self.quantity * self.unit_price

    def __str__(self) -> str:
        return f"{self.product_id} x{self.quantity} [{self.status}]"


class OrderStatusHistory(BaseModel):
    """Append-only audit trail for order status transitions.

    ``changed_by`` holds the principal id; ``None`` means the change was
    derived by the system (e.g. item-status recompute).
    """

    order: models.ForeignKey = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="status_history",
    )
    old_status: models.CharField = models.CharField(  # noqa: DJ01
        max_length=20,
        choices=OrderStatus.choices,
        null=True,
        blank=True,
    )
    new_status: models.CharField = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
    )
    changed_by: models.CharField = models.CharField(  # noqa: DJ01
        max_length=64, null=True, blank=True
    )
    notes: models.TextField = models.TextField(blank=True, default="")

    class Meta:
        db_table = "order_status_history"
        ordering = ["-created_at"]
        indexes = [
            models.Index(
                fields=["order", "-created_at"],
                name="osh_order_created_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.order_id} : {self.old_status} -> {self.new_status}"


class CancelRequest(DomainEventMixin, BaseModel):
    """Customer request to cancel an order, resolved once by staff.

    ``Pending`` moves to ``Approved`` or ``Rejected`` and never back.
    """

    order: models.ForeignKey = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="cancel_requests",
    )
    customer_id: models.CharField = models.CharField(max_length=64, db_index=True)
    reason: models.TextField = models.TextField()
    status: models.CharField = models.CharField(
        max_length=20,
        choices=CancelRequestStatus.choices,
        default=CancelRequestStatus.PENDING,
    )
    processed_by: models.CharField = models.CharField(  # noqa: DJ01
        max_length=64, null=True, blank=True
    )
    processed_at: models.DateTimeField = models.DateTimeField(null=True, blank=True)
    decision_note: models.TextField = models.TextField(blank=True, default="")

    class Meta:
        db_table = "cancel_requests"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status", "-created_at"], name="cr_status_created_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["order"],
                condition=models.Q(status=CancelRequestStatus.PENDING),
                name="cancel_requests_one_pending_per_order",
            ),
        ]

    @property
    def requested_date(self):
        return self.created_at

    @property
    def is_resolved(self) -> bool:
        return self.status != CancelRequestStatus.PENDING

    def __str__(self) -> str:
        return f"CancelRequest {self.id} for {self.order_id} [{self.status}]"
