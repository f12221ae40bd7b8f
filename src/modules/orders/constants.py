"""Order domain constants.

Defines status choices and the status transitions of the order state
machine.  Role gates and item-status derivation live in
``modules.orders.state_machine``.
"""

from django.db import models


class OrderStatus(models.TextChoices):
    PENDING = "Pending", "Pending"
    PROCESSING = "Processing", "Processing"
    SHIPPED = "Shipped", "Shipped"
    PARTIALLY_DELIVERED = "PartiallyDelivered", "Partially delivered"
    DELIVERED = "Delivered", "Delivered"
    CANCELLED = "Cancelled", "Cancelled"


class PaymentStatus(models.TextChoices):
    PENDING = "Pending", "Pending"
    PAID = "Paid", "Paid"
    FAILED = "Failed", "Failed"


class CancelRequestStatus(models.TextChoices):
    PENDING = "Pending", "Pending"
    APPROVED = "Approved", "Approved"
    REJECTED = "Rejected", "Rejected"


VALID_TRANSITIONS: dict[str, set[str]] = {
    OrderStatus.PENDING: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED, OrderStatus.PARTIALLY_DELIVERED},
    OrderStatus.PARTIALLY_DELIVERED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
}

# Items only move forward along this sequence and are never cancelled one by one.
ITEM_STATUS_SEQUENCE: tuple[str, ...] = (
    OrderStatus.PENDING,
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
)

TERMINAL_STATES: set[str] = {OrderStatus.DELIVERED, OrderStatus.CANCELLED}

CANCELLABLE_STATES: set[str] = {OrderStatus.PENDING, OrderStatus.PROCESSING}

# Orders in these states have left the warehouse.
DISPATCHED_STATES: set[str] = {
    OrderStatus.SHIPPED,
    OrderStatus.PARTIALLY_DELIVERED,
    OrderStatus.DELIVERED,
}

# Items in these states have left the warehouse; their stock is spent.
DISPATCHED_ITEM_STATES: set[str] = {OrderStatus.SHIPPED, OrderStatus.DELIVERED}

ORDER_NUMBER_MAX_RETRIES = 5
