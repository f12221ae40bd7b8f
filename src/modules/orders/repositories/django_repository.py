"""Django ORM implementation of the Order and CancelRequest repositories.

Concurrency control uses the ``version`` column: every write is a
conditional ``UPDATE ... WHERE id = ? AND version = ?``.  A writer that
read the order before somebody else changed it updates zero rows and
gets ``ConcurrentModification`` instead of silently overwriting.

Pending domain events collected on an aggregate are written to the
transactional outbox by the same call that persists the aggregate.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Sequence
from uuid import UUID

import structlog
from django.core.exceptions import ValidationError
from django.db import IntegrityError, models, transaction
from django.db.models import F
from django.utils import timezone

from modules.core.outbox import record_events
from modules.orders.constants import CancelRequestStatus
from modules.orders.exceptions import ConcurrentModification, DuplicateCancelRequest
from modules.orders.models import CancelRequest, Order, OrderItem, OrderStatusHistory
from modules.orders.repositories.interfaces import (
    ICancelRequestRepository,
    IOrderRepository,
)
from shared.domain.events import DomainEventMixin

logger = structlog.get_logger(__name__)


def _flush_events(entity: DomainEventMixin, topic: str) -> int:
    events = entity.domain_events
    if events:
        record_events(events, topic=topic)
        entity.clear_domain_events()
    return len(events)


class OrderDjangoRepository(IOrderRepository):
    """Concrete Order repository backed by Django ORM."""

    topic = "orders"

    def _base_queryset(self) -> models.QuerySet[Order]:
        return Order.objects.prefetch_related("items__product", "status_history")

    # ------------------------------------------------------------------
    # Create (aggregate root + children)
    # ------------------------------------------------------------------

    @transaction.atomic
    def create(self, data: Dict[str, Any]) -> Order:
        order = Order(
            customer_id=data["customer_id"],
            shipping_address=data["shipping_address"],
            shipping_fee=data.get("shipping_fee", 0),
            note=data.get("note", ""),
            idempotency_key=data.get("idempotency_key"),
        )
        order.save()

        items = data.get("items", [])
        OrderItem.objects.bulk_create(
            [
                OrderItem(
                    order=order,
                    product_id=item["product_id"],
                    vendor_id=item["vendor_id"],
                    quantity=item["quantity"],
                    unit_price=item["unit_price"],
                )
                for item in items
            ]
        )

        logger.info(
            "order.persisted",
            order_id=str(order.id),
            order_number=order.order_number,
            item_count=len(items),
        )
        return order

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_by_id(self, id: str) -> Optional[Order]:
        """Retrieve an order with prefetched items and history.

        Returns ``None`` for non-existent or invalid IDs.
        """
        try:
            return self._base_queryset().filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def list(self, filters: Optional[Dict[str, Any]] = None) -> models.QuerySet[Order]:
        """List orders with optional Django ORM look-ups.

        Examples of valid filters::

            {"customer_id": "c-1"}
            {"status": "Pending"}
        """
        queryset = self._base_queryset()
        if filters:
            queryset = queryset.filter(**filters)
        return queryset

    def list_for_vendor(self, vendor_id: str) -> models.QuerySet[Order]:
        vendor_orders = OrderItem.objects.filter(vendor_id=vendor_id).values("order_id")
        return self._base_queryset().filter(id__in=vendor_orders)

    def get_by_idempotency_key(self, key: str) -> Optional[Order]:
        return self._base_queryset().filter(idempotency_key=key).first()

    # ------------------------------------------------------------------
    # Versioned writes
    # ------------------------------------------------------------------

    def save_events(self, order: Order) -> int:
        return _flush_events(order, self.topic)

    @transaction.atomic
    def save_versioned(self, order: Order, fields: Sequence[str]) -> Order:
        values = {
            field: getattr(order, field)
            for field in fields
            if field not in ("version", "updated_at")
        }
        now = timezone.now()
        updated = Order.objects.filter(id=order.id, version=order.version).update(
            version=F("version") + 1,
            updated_at=now,
            **values,
        )
        if not updated:
            logger.warning(
                "order.version_conflict",
                order_id=str(order.id),
                expected_version=order.version,
            )
            raise ConcurrentModification(
                f"Order {order.id} was modified by another request."
            )

        order.version += 1
        order.updated_at = now
        event_count = _flush_events(order, self.topic)
        logger.info(
            "order.saved",
            order_id=str(order.id),
            version=order.version,
            fields=sorted(values),
            event_count=event_count,
        )
        return order

    @transaction.atomic
    def replace_items(self, order: Order, items: Iterable[Dict[str, Any]]) -> None:
        wanted = {item["product_id"]: item for item in items}
        existing = {item.product_id: item for item in OrderItem.objects.filter(order=order)}

        removed = [pid for pid in existing if pid not in wanted]
        if removed:
            OrderItem.objects.filter(order=order, product_id__in=removed).delete()

        to_create = []
        for product_id, item in wanted.items():
            current = existing.get(product_id)
            if current is None:
                to_create.append(
                    OrderItem(
                        order=order,
                        product_id=product_id,
                        vendor_id=item["vendor_id"],
                        quantity=item["quantity"],
                        unit_price=item["unit_price"],
                    )
                )
            elif current.quantity != item["quantity"]:
                current.quantity = item["quantity"]
                current.save(update_fields=["quantity"])
        if to_create:
            OrderItem.objects.bulk_create(to_create)

        logger.info(
            "order.items_replaced",
            order_id=str(order.id),
            removed=len(removed),
            added=len(to_create),
        )

    def set_item_status(
        self,
        order: Order,
        status: str,
        product_id: Optional[UUID] = None,
        from_statuses: Optional[Iterable[str]] = None,
    ) -> int:
        queryset = OrderItem.objects.filter(order=order)
        if product_id is not None:
            queryset = queryset.filter(product_id=product_id)
        if from_statuses is not None:
            queryset = queryset.filter(status__in=list(from_statuses))
        return queryset.update(status=status, updated_at=timezone.now())

    def add_history(
        self,
        order_id: UUID,
        new_status: str,
        old_status: Optional[str] = None,
        notes: str = "",
        changed_by: Optional[str] = None,
    ) -> OrderStatusHistory:
        history = OrderStatusHistory.objects.create(
            order_id=order_id,
            old_status=old_status,
            new_status=new_status,
            notes=notes,
            changed_by=changed_by,
        )
        logger.info(
            "order.history_added",
            order_id=str(order_id),
            old_status=old_status,
            new_status=new_status,
        )
        return history

    def close_pending_cancel_requests(
        self, order: Order, processed_by: str, decision_note: str = ""
    ) -> int:
        now = timezone.now()
        closed = CancelRequest.objects.filter(
            order_id=order.id, status=CancelRequestStatus.PENDING
        ).update(
            status=CancelRequestStatus.APPROVED,
            processed_by=processed_by,
            processed_at=now,
            decision_note=decision_note,
            updated_at=now,
        )
        if closed:
            logger.info(
                "cancel_request.closed_by_cancellation",
                order_id=str(order.id),
                processed_by=processed_by,
            )
        return closed

    @transaction.atomic
    def delete(self, order: Order) -> None:

        order_id = order.id
        deleted, _ = Order.objects.filter(id=order_id, version=order.version).delete()
        if not deleted:
            raise ConcurrentModification(
                f"Order {order_id} was modified by another request."
            )
        _flush_events(order, self.topic)
        logger.info("order.deleted", order_id=str(order_id))


class CancelRequestDjangoRepository(ICancelRequestRepository):
    """Concrete CancelRequest repository backed by Django ORM."""

    topic = "cancellations"

    def get_by_id(self, id: str) -> Optional[CancelRequest]:
        try:
            return CancelRequest.objects.select_related("order").filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[CancelRequest]:
        queryset = CancelRequest.objects.select_related("order")
        if filters:
            queryset = queryset.filter(**filters)
        return list(queryset)

    def has_pending(self, order_id: UUID) -> bool:
        return CancelRequest.objects.filter(
            order_id=order_id, status=CancelRequestStatus.PENDING
        ).exists()

    @transaction.atomic
    def create(self, order: Order, customer_id: str, reason: str) -> CancelRequest:
        request = CancelRequest(order=order, customer_id=customer_id, reason=reason)
        try:
            with transaction.atomic():
                request.save()
        except IntegrityError as exc:
            raise DuplicateCancelRequest(
                f"Order {order.id} already has a pending cancellation request."
            ) from exc
        logger.info(
            "cancel_request.created",
            request_id=str(request.id),
            order_id=str(order.id),
        )
        return request

    def save_events(self, request: CancelRequest) -> int:
        return _flush_events(request, self.topic)

    @transaction.atomic
    def resolve(
        self,
        request: CancelRequest,
        status: str,
        processed_by: str,
        decision_note: str = "",
    ) -> bool:
        now = timezone.now()
        updated = CancelRequest.objects.filter(
            id=request.id, status=CancelRequestStatus.PENDING
        ).update(
            status=status,
            processed_by=processed_by,
            processed_at=now,
            decision_note=decision_note,
            updated_at=now,
        )
        if not updated:
            return False

        request.status = status
        request.processed_by = processed_by
        request.processed_at = now
        request.decision_note = decision_note
        logger.info(
            "cancel_request.resolved",
            request_id=str(request.id),
            status=status,
            processed_by=processed_by,
        )
        return True
