"""Audit-log handlers for Orders domain events.

They only log.  Customer, vendor and staff notifications are produced by
``modules.notifications``.
"""

from __future__ import annotations

from typing import List, Tuple, Type

import structlog

from modules.orders.events import (
    OrderCancelled,
    OrderCreated,
    OrderDeleted,
    OrderItemStatusChanged,
    OrderPaymentStatusChanged,
    OrderStatusChanged,
    OrderUpdated,
)
from shared.domain.bus import IEventHandler
from shared.domain.events import DomainEvent

logger = structlog.get_logger(__name__)


class OrderCreatedHandler(IEventHandler[OrderCreated]):
    def handle(self, event: OrderCreated) -> None:
        logger.info(
            "order.event.created",
            order_id=str(event.aggregate_id),
            order_number=event.order_number,
            total_amount=event.total_amount,
        )


class OrderUpdatedHandler(IEventHandler[OrderUpdated]):
    def handle(self, event: OrderUpdated) -> None:
        logger.info(
            "order.event.updated",
            order_id=str(event.aggregate_id),
            items_changed=event.items_changed,
        )


class OrderStatusChangedHandler(IEventHandler[OrderStatusChanged]):
    def handle(self, event: OrderStatusChanged) -> None:
        logger.info(
            "order.event.status_changed",
            order_id=str(event.aggregate_id),
            old_status=event.old_status,
            new_status=event.new_status,
            changed_by=event.changed_by,
        )


class OrderItemStatusChangedHandler(IEventHandler[OrderItemStatusChanged]):
    def handle(self, event: OrderItemStatusChanged) -> None:
        logger.info(
            "order.event.item_status_changed",
            order_id=str(event.aggregate_id),
            product_id=event.product_id,
            vendor_id=event.vendor_id,
            new_status=event.new_status,
        )


class OrderPaymentStatusChangedHandler(IEventHandler[OrderPaymentStatusChanged]):
    def handle(self, event: OrderPaymentStatusChanged) -> None:
        logger.info(
            "order.event.payment_status_changed",
            order_id=str(event.aggregate_id),
            old_payment_status=event.old_payment_status,
            new_payment_status=event.new_payment_status,
        )


class OrderCancelledHandler(IEventHandler[OrderCancelled]):
    def handle(self, event: OrderCancelled) -> None:
        logger.info(
            "order.event.cancelled",
            order_id=str(event.aggregate_id),
            cancelled_via=event.cancelled_via,
        )


class OrderDeletedHandler(IEventHandler[OrderDeleted]):
    def handle(self, event: OrderDeleted) -> None:
        logger.warning(
            "order.event.deleted",
            order_id=str(event.aggregate_id),
            order_number=event.order_number,
            stock_restored=event.stock_restored,
        )


SUBSCRIPTIONS: List[Tuple[Type[DomainEvent], IEventHandler]] = [
    (OrderCreated, OrderCreatedHandler()),
    (OrderUpdated, OrderUpdatedHandler()),
    (OrderStatusChanged, OrderStatusChangedHandler()),
    (OrderItemStatusChanged, OrderItemStatusChangedHandler()),
    (OrderPaymentStatusChanged, OrderPaymentStatusChangedHandler()),
    (OrderCancelled, OrderCancelledHandler()),
    (OrderDeleted, OrderDeletedHandler()),
]
