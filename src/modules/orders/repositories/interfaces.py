"""Order and cancel request repository interfaces.

Extends ``IRepository`` with the methods the Order aggregate needs:
atomic creation with items, versioned writes, status history tracking
and idempotency-key look-up.

The Service Layer depends exclusively on these contracts (DIP).
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, Sequence
from uuid import UUID

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from django.db import models

    from modules.orders.models import CancelRequest, Order, OrderStatusHistory


class IOrderRepository(IRepository["Order"]):
    """Repository contract for the Order aggregate root.

    The Order aggregate includes OrderItem children and
    OrderStatusHistory records.  Writes are versioned: a write against a
    stale ``version`` raises ``ConcurrentModification``.
    """

    @abstractmethod
    def create(self, data: Dict[str, Any]) -> Order:
        """Create an order with its items atomically.

        ``data`` must include ``customer_id``, ``shipping_address`` and
        ``items`` (dicts with ``product_id``, ``vendor_id``, ``quantity``,
        ``unit_price``); optionally ``shipping_fee``, ``note`` and
        ``idempotency_key``.
        """

    @abstractmethod
    def list(self, filters: Optional[Dict[str, Any]] = None) -> "models.QuerySet[Order]":
        """List orders with optional filters, relations prefetched."""

    @abstractmethod
    def list_for_vendor(self, vendor_id: str) -> "models.QuerySet[Order]":
        """Orders containing at least one item of ``vendor_id``."""

    @abstractmethod
    def get_by_idempotency_key(self, key: str) -> Optional[Order]:
        """Retrieve an order by its idempotency key."""

    @abstractmethod
    def save_events(self, order: Order) -> int:
        """Flush events collected on ``order`` to the outbox without a write."""

    @abstractmethod
    def save_versioned(self, order: Order, fields: Sequence[str]) -> Order:
        """Write ``fields`` if nobody else changed the order since it was read.

        Bumps ``version`` and flushes pending domain events to the outbox.

        Raises:
            ConcurrentModification: the stored version differs.
        """

    @abstractmethod
    def replace_items(self, order: Order, items: Iterable[Dict[str, Any]]) -> None:
        """Make the order's items match ``items`` (one dict per product)."""

    @abstractmethod
    def set_item_status(
        self, order: Order, status: str, product_id: Optional[UUID] = None,
        from_statuses: Optional[Iterable[str]] = None,
    ) -> int:
        """Set item status; all items unless ``product_id`` is given."""

    @abstractmethod
    def add_history(
        self,
        order_id: UUID,
        new_status: str,
        old_status: Optional[str] = None,
        notes: str = "",
        changed_by: Optional[str] = None,
    ) -> OrderStatusHistory:
        """Record a status change in the order's audit trail."""

    @abstractmethod
    def close_pending_cancel_requests(
        self, order: Order, processed_by: str, decision_note: str = ""
    ) -> int:
        """Approve any Pending cancel request of an order cancelled by staff."""

    @abstractmethod
    def delete(self, order: Order) -> None:

        """Hard-delete the order and flush its pending domain events.

        Raises:
            ConcurrentModification: the stored version differs.
        """


class ICancelRequestRepository(IRepository["CancelRequest"]):
    """Repository contract for cancellation requests."""

    @abstractmethod
    def create(self, order: Order, customer_id: str, reason: str) -> CancelRequest:
        """Persist a new Pending request.

        Raises:
            DuplicateCancelRequest: a Pending request exists for the order.
        """

    @abstractmethod
    def save_events(self, request: CancelRequest) -> int:
        """Flush events collected on ``request`` to the outbox."""

    @abstractmethod
    def has_pending(self, order_id: UUID) -> bool:
        """Whether the order has an unresolved request."""

    @abstractmethod
    def resolve(
        self,
        request: CancelRequest,
        status: str,
        processed_by: str,
        decision_note: str = "",
    ) -> bool:
        """Move a Pending request to ``status``.

        Returns ``False`` when the request was no longer Pending, so two
        concurrent decisions cannot both win.
        """

    @abstractmethod
    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[CancelRequest]:
        """List requests, newest first."""
