"""Event handlers that turn domain events into notifications.

Handlers run after commit (published from the outbox).  They only call
the dispatcher, which never raises on storage errors, so a notification
problem cannot fail the outbox row that carried the event.
"""

from __future__ import annotations

import structlog

from modules.core.identity import Role
from modules.notifications.dispatcher import NotificationDispatcher, dispatcher
from modules.orders.events import (
    CancellationProcessed,
    CancellationRequested,
    OrderCancelled,
    OrderStatusChanged,
)
from modules.orders.services import CANCELLED_VIA_STAFF
from modules.products.events import LowStockDetected
from shared.domain.bus import IEventHandler

logger = structlog.get_logger(__name__)


class _NotifyingHandler:
    def __init__(self, notifier: NotificationDispatcher = dispatcher) -> None:
        self._notifier = notifier


class OrderCancelledHandler(_NotifyingHandler, IEventHandler[OrderCancelled]):
    """Tell the customer their order was cancelled by staff.

    The staff reason is passed on when one was given, otherwise a
    generic message is used.  Cancellations that come from an approved
    request are announced by ``CancellationProcessedHandler`` instead.
    """

    def handle(self, event: OrderCancelled) -> None:
        if event.cancelled_via != CANCELLED_VIA_STAFF:
            return
        if event.reason:
            message = f"Your order {event.order_number} was cancelled: {event.reason}"
        else:
            message = (
                f"Your order {event.order_number} was cancelled. "
                "Any reserved items have been released."
            )
        self._notifier.notify("Order cancelled", message, user_id=event.customer_id)


class OrderStatusChangedHandler(_NotifyingHandler, IEventHandler[OrderStatusChanged]):
    def handle(self, event: OrderStatusChanged) -> None:
        self._notifier.notify(
            "Order status updated",
            f"Your order {event.order_number} is now {event.new_status}.",
            user_id=event.customer_id,
        )


class CancellationRequestedHandler(_NotifyingHandler, IEventHandler[CancellationRequested]):
    """Ask customer service to review a new cancellation request."""

    def handle(self, event: CancellationRequested) -> None:
        self._notifier.notify(
            "Cancellation requested",
            f"Order {event.order_number} has a new cancellation request: {event.reason}",
            role=Role.CSR,
        )


class CancellationProcessedHandler(_NotifyingHandler, IEventHandler[CancellationProcessed]):
    def handle(self, event: CancellationProcessed) -> None:
        if event.approved:
            title = "Cancellation approved"
            message = f"Your cancellation request for order {event.order_number} was approved."
        else:
            title = "Cancellation rejected"
            message = f"Your cancellation request for order {event.order_number} was rejected."
        if event.decision_note:
            message = f"{message} {event.decision_note}"
        self._notifier.notify(title, message, user_id=event.customer_id)


class LowStockHandler(_NotifyingHandler, IEventHandler[LowStockDetected]):
    def handle(self, event: LowStockDetected) -> None:
        self._notifier.notify(
            "Low stock",
            f"{event.name} ({event.sku}) has {event.stock} units left.",
            user_id=event.vendor_id,
        )


order_cancelled_handler = OrderCancelledHandler()
order_status_changed_handler = OrderStatusChangedHandler()
cancellation_requested_handler = CancellationRequestedHandler()
cancellation_processed_handler = CancellationProcessedHandler()
low_stock_handler = LowStockHandler()
