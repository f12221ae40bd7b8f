"""Domain events for the Orders bounded context.

Events are written to the outbox in the same transaction as the order
change that produced them, so they carry everything their handlers need
(handlers never re-read the order, which may already be gone).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from shared.domain.events import DomainEvent


@dataclass(frozen=True, kw_only=True)
class OrderCreated(DomainEvent):
    """Raised when an order is created."""

    customer_id: str
    order_number: str
    total_amount: str


@dataclass(frozen=True, kw_only=True)
class OrderUpdated(DomainEvent):
    """Raised when the owner edits items, address or note."""

    customer_id: str
    order_number: str
    items_changed: bool


@dataclass(frozen=True, kw_only=True)
class OrderStatusChanged(DomainEvent):
    """Raised when the aggregate status changes (cancellation excluded)."""

    customer_id: str
    order_number: str
    old_status: str
    new_status: str
    changed_by: Optional[str] = None


@dataclass(frozen=True, kw_only=True)
class OrderItemStatusChanged(DomainEvent):
    """Raised when a vendor moves one line item forward."""

    product_id: str
    vendor_id: str
    old_status: str
    new_status: str


@dataclass(frozen=True, kw_only=True)
class OrderCancelled(DomainEvent):
    """Raised when an order is cancelled and its stock restored.

    ``cancelled_via`` is ``"staff"`` for the direct path and
    ``"customer_request"`` when an approved cancel request drove it.
    """

    customer_id: str
    order_number: str
    reason: str = ""
    cancelled_via: str = "staff"


@dataclass(frozen=True, kw_only=True)
class OrderPaymentStatusChanged(DomainEvent):
    customer_id: str
    order_number: str
    old_payment_status: str
    new_payment_status: str


@dataclass(frozen=True, kw_only=True)
class OrderDeleted(DomainEvent):
    customer_id: str
    order_number: str
    stock_restored: bool


@dataclass(frozen=True, kw_only=True)
class CancellationRequested(DomainEvent):
    """Raised when a customer asks to cancel an order.

    ``aggregate_id`` is the order id.
    """

    request_id: str
    customer_id: str
    order_number: str
    reason: str


@dataclass(frozen=True, kw_only=True)
class CancellationProcessed(DomainEvent):
    """Raised when staff approve or reject a cancel request.

    ``aggregate_id`` is the order id.
    """

    request_id: str
    customer_id: str
    order_number: str
    approved: bool
    decision_note: str = ""
