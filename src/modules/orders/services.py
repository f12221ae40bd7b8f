"""Order service layer (Use Cases).

Orchestrates order creation, owner edits, status management, item
fulfilment, cancellation, payment status and administrative deletion.

Business rules enforced:
- Products must exist and be active to be ordered.
- Stock moves only through the ``StockLedger``.  Creation reserves
  every line or none; edits reconcile deltas (restores first).
- Every path that ends in Cancelled, and deletion of an order that was
  neither Delivered nor Cancelled, restores the stock of all items.
- Status transitions and role authority are checked by
  ``modules.orders.state_machine``.
- Writes are versioned: a stale writer gets ``ConcurrentModification``.
- History recorded on every status change.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Optional
from uuid import UUID

import structlog
from django.db import IntegrityError, models, transaction

from modules.core.identity import Principal, Role
from modules.orders import state_machine
from modules.orders.constants import OrderStatus, PaymentStatus
from modules.orders.events import (
    OrderCancelled,
    OrderCreated,
    OrderDeleted,
    OrderItemStatusChanged,
    OrderPaymentStatusChanged,
    OrderStatusChanged,
    OrderUpdated,
)
from modules.orders.exceptions import (
    Forbidden,
    InvalidTransition,
    OrderItemNotFound,
    OrderLocked,
    OrderNotFound,
)
from modules.products.exceptions import InactiveProduct, ProductNotFound
from modules.products.ledger import StockLedger

if TYPE_CHECKING:
    from modules.orders.dtos import CreateOrderDTO, OrderItemDTO, UpdateOrderDTO
    from modules.orders.models import Order
    from modules.orders.repositories.interfaces import IOrderRepository
    from modules.products.models import Product
    from modules.products.repositories.interfaces import IProductRepository

logger = structlog.get_logger(__name__)

CANCELLED_VIA_STAFF = "staff"
CANCELLED_VIA_REQUEST = "customer_request"


class OrderService:
    """Application service for Order use-cases.

    Receives repositories and the stock ledger via constructor injection.
    """

    def __init__(
        self,
        order_repository: IOrderRepository,
        product_repository: IProductRepository,
        ledger: Optional[StockLedger] = None,
    ) -> None:
        self._order_repo = order_repository
        self._product_repo = product_repository
        self._ledger = ledger or StockLedger()

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def create_order(self, dto: CreateOrderDTO) -> Order:
        """Create a new order, reserving stock for every item.

        Steps:
        1. Replay: an already used ``idempotency_key`` returns that order.
        2. Validate every product exists and is active.
        3. Reserve stock through the ledger (all lines or none).
        4. Persist order, items, history and ``OrderCreated`` in one
           transaction.  If that fails the reservation is released.

        Raises:
            ProductNotFound: a product does not exist.
            InactiveProduct: a product is inactive.
            InsufficientStock: not enough stock for a line.
        """
        log = logger.bind(customer_id=dto.customer_id)
        log.info("order.creation_started", item_count=len(dto.items))

        if dto.idempotency_key:
            existing = self._replay(dto)
            if existing is not None:
                return existing

        products = self._load_orderable_products(dto.items)
        lines = [item.to_stock_line() for item in dto.items]
        self._ledger.reserve(lines)

        try:
            with transaction.atomic():
                order = self._order_repo.create(
                    {
                        "customer_id": dto.customer_id,
                        "shipping_address": dto.shipping_address,
                        "shipping_fee": dto.shipping_fee,
                        "note": dto.note,
                        "idempotency_key": dto.idempotency_key,
                        "items": [
                            self._item_data(item, products[item.product_id])
                            for item in dto.items
                        ],
                    }
                )
                self._order_repo.add_history(
                    order_id=order.id,
                    new_status=OrderStatus.PENDING,
                    notes="Order created",
                    changed_by=dto.customer_id,
                )
                order.add_domain_event(
                    OrderCreated(
                        aggregate_id=order.id,
                        customer_id=order.customer_id,
                        order_number=order.order_number,
                        total_amount=str(order.total_amount),
                    )
                )
                self._order_repo.save_events(order)
        except IntegrityError:
            self._ledger.release(lines)
            if dto.idempotency_key:
                existing = self._replay(dto)
                if existing is not None:
                    return existing
            raise
        except Exception:
            self._ledger.release(lines)
            log.warning("order.creation_rolled_back")
            raise

        log.info("order.created", order_id=str(order.id), order_number=order.order_number)
        return self._order_repo.get_by_id(str(order.id)) or order

    def update_order(self, order_id: UUID, requester: Principal, dto: UpdateOrderDTO) -> Order:
        """Owner edit of items, shipping address, shipping fee or note.

        Item changes are reconciled through the ledger; if an increase
        cannot be satisfied nothing changes.

        Raises:
            OrderNotFound, Forbidden, OrderLocked, ProductNotFound,
            InactiveProduct, InsufficientStock, ConcurrentModification.
        """
        order = self.get_order(str(order_id))
        if requester.role != Role.CUSTOMER or order.customer_id != requester.id:
            raise Forbidden("Only the customer who placed the order can edit it.")
        state_machine.check_mutable(order.status)

        log = logger.bind(order_id=str(order.id), version=order.version)
        fields: List[str] = []
        for field in ("shipping_address", "shipping_fee", "note"):
            value = getattr(dto, field)
            if value is not None and value != getattr(order, field):
                setattr(order, field, value)
                fields.append(field)

        deltas: Dict[UUID, int] = {}
        item_data: List[Dict[str, Any]] = []
        if dto.items is not None:
            current = {item.product_id: item for item in order.items.all()}
            state_machine.check_item_edits(
                [(item.product_id, item.status, item.quantity) for item in current.values()],
                {item.product_id: item.quantity for item in dto.items},
            )
            added = [item for item in dto.items if item.product_id not in current]
            products = self._load_orderable_products(added) if added else {}
            for item in dto.items:
                existing = current.get(item.product_id)
                if existing is not None:
                    item_data.append(
                        {
                            "product_id": item.product_id,
                            "vendor_id": existing.vendor_id,
                            "quantity": item.quantity,
                            "unit_price": existing.unit_price,
                        }
                    )
                else:
                    item_data.append(self._item_data(item, products[item.product_id]))
            deltas = self._ledger.reconcile(
                order.stock_lines(), [item.to_stock_line() for item in dto.items]
            )

        try:
            with transaction.atomic():
                if dto.items is not None:
                    self._order_repo.replace_items(order, item_data)
                order.add_domain_event(
                    OrderUpdated(
                        aggregate_id=order.id,
                        customer_id=order.customer_id,
                        order_number=order.order_number,
                        items_changed=bool(deltas),
                    )
                )
                self._order_repo.save_versioned(order, fields)
        except Exception:
            if deltas:
                self._ledger.revert(deltas)
            log.warning("order.update_rolled_back")
            raise

        log.info("order.updated", fields=fields, stock_changes=len(deltas))
        return self.get_order(str(order.id))

    def update_status(
        self,
        order_id: UUID,
        new_status: str,
        actor: Principal,
        note: str = "",
    ) -> Order:
        """Transition an order to ``new_status`` on behalf of ``actor``.

        A target of Cancelled is routed through ``cancel_order`` so stock
        is restored.  Processing and Shipped are cascaded to items that
        lag behind.

        Raises:
            OrderNotFound, Forbidden, InvalidTransition, AlreadyCancelled,
            OrderLocked, ConcurrentModification.
        """
        if new_status == OrderStatus.CANCELLED:
            return self.cancel_order(order_id, actor, reason=note)

        order = self.get_order(str(order_id))
        state_machine.check_status_authority(actor, new_status, order.vendor_ids())

        log = logger.bind(
            order_id=str(order.id),
            current_status=order.status,
            new_status=new_status,
            actor=actor.id,
        )
        try:
            state_machine.check_transition(
                order.status, new_status, [item.status for item in order.items.all()]
            )
        except (InvalidTransition, OrderLocked):
            log.warning("order.invalid_transition")
            raise

        old_status = order.status
        with transaction.atomic():
            order.status = new_status
            order.add_domain_event(
                OrderStatusChanged(
                    aggregate_id=order.id,
                    customer_id=order.customer_id,
                    order_number=order.order_number,
                    old_status=old_status,
                    new_status=new_status,
                    changed_by=actor.id,
                )
            )
            self._order_repo.save_versioned(order, ["status"])
            lagging = state_machine.items_to_advance(new_status)
            if lagging:
                self._order_repo.set_item_status(order, new_status, from_statuses=lagging)
            self._order_repo.add_history(
                order_id=order.id,
                new_status=new_status,
                old_status=old_status,
                notes=note,
                changed_by=actor.id,
            )

        log.info("order.status_updated")
        return self.get_order(str(order.id))

    def update_item_status(
        self,
        order_id: UUID,
        product_id: UUID,
        new_status: str,
        actor: Principal,
    ) -> Order:
        """Move one line item forward and recompute the aggregate status.

        Setting an item to the status it already has changes nothing, so
        repeating the same update yields the same order status.

        Raises:
            OrderNotFound, OrderItemNotFound, Forbidden, InvalidTransition,
            OrderLocked, ConcurrentModification.
        """
        order = self.get_order(str(order_id))
        items = list(order.items.all())
        item = next((i for i in items if i.product_id == product_id), None)
        if item is None:
            raise OrderItemNotFound(f"Order {order_id} has no item for product {product_id}.")
        state_machine.check_item_authority(actor, item.vendor_id)

        if not state_machine.check_item_transition(order.status, item.status, new_status):
            logger.info(
                "order.item_status_unchanged",
                order_id=str(order.id),
                product_id=str(product_id),
                status=new_status,
            )
            return order

        statuses = [new_status if i.product_id == product_id else i.status for i in items]
        derived = state_machine.derive_status(order.status, statuses)
        old_status = order.status
        old_item_status = item.status

        with transaction.atomic():
            order.add_domain_event(
                OrderItemStatusChanged(
                    aggregate_id=order.id,
                    product_id=str(product_id),
                    vendor_id=item.vendor_id,
                    old_status=old_item_status,
                    new_status=new_status,
                )
            )
            fields: List[str] = []
            if derived != old_status:
                order.status = derived
                fields.append("status")
                order.add_domain_event(
                    OrderStatusChanged(
                        aggregate_id=order.id,
                        customer_id=order.customer_id,
                        order_number=order.order_number,
                        old_status=old_status,
                        new_status=derived,
                    )
                )
            self._order_repo.save_versioned(order, fields)
            self._order_repo.set_item_status(order, new_status, product_id=product_id)
            if derived != old_status:
                self._order_repo.add_history(
                    order_id=order.id,
                    new_status=derived,
                    old_status=old_status,
                    notes="Derived from item statuses",
                )

        logger.info(
            "order.item_status_updated",
            order_id=str(order.id),
            product_id=str(product_id),
            item_status=new_status,
            order_status=derived,
            actor=actor.id,
        )
        return self.get_order(str(order.id))

    def cancel_order(
        self,
        order_id: UUID,
        actor: Principal,
        reason: str = "",
        cancelled_via: str = CANCELLED_VIA_STAFF,
    ) -> Order:
        """Cancel an order and restore the stock of all its items.

        The versioned status write happens before any stock is restored,
        so of two concurrent cancellations only the winner restores.  A
        staff cancellation also approves a Pending cancel request, so the
        customer is not later told their request was rejected.

        Raises:
            OrderNotFound, Forbidden, AlreadyCancelled, InvalidTransition,
            ConcurrentModification.
        """
        order = self.get_order(str(order_id))
        state_machine.check_status_authority(actor, OrderStatus.CANCELLED, order.vendor_ids())

        log = logger.bind(order_id=str(order.id), current_status=order.status, actor=actor.id)
        try:
            state_machine.check_cancellable(
                order.status, [item.status for item in order.items.all()]
            )
        except InvalidTransition:
            log.warning("order.cancel_not_allowed")
            raise

        old_status = order.status
        lines = order.stock_lines()
        with transaction.atomic():
            order.status = OrderStatus.CANCELLED
            order.add_domain_event(
                OrderCancelled(
                    aggregate_id=order.id,
                    customer_id=order.customer_id,
                    order_number=order.order_number,
                    reason=reason,
                    cancelled_via=cancelled_via,
                )
            )
            self._order_repo.save_versioned(order, ["status"])
            self._order_repo.add_history(
                order_id=order.id,
                new_status=OrderStatus.CANCELLED,
                old_status=old_status,
                notes=reason or "Order cancelled",
                changed_by=actor.id,
            )
            if cancelled_via == CANCELLED_VIA_STAFF:
                self._order_repo.close_pending_cancel_requests(
                    order, actor.id, decision_note=reason or "Order cancelled"
                )
            self._ledger.release(lines)

        log.info("order.cancelled", cancelled_via=cancelled_via, restored_lines=len(lines))
        return self.get_order(str(order.id))

    def update_payment_status(
        self, order_id: UUID, payment_status: str, actor: Principal
    ) -> Order:
        """Set the payment axis.  Independent of the order status.

        Raises:
            OrderNotFound, Forbidden, ConcurrentModification.
        """
        if actor.role != Role.ADMIN:
            raise Forbidden("Only admins can change payment status.")
        if payment_status not in PaymentStatus.values:
            raise ValueError(f"Unknown payment status {payment_status!r}.")

        order = self.get_order(str(order_id))
        old = order.payment_status
        if old == payment_status:
            return order

        with transaction.atomic():
            order.payment_status = payment_status
            order.add_domain_event(
                OrderPaymentStatusChanged(
                    aggregate_id=order.id,
                    customer_id=order.customer_id,
                    order_number=order.order_number,
                    old_payment_status=old,
                    new_payment_status=payment_status,
                )
            )
            self._order_repo.save_versioned(order, ["payment_status"])

        logger.info(
            "order.payment_status_updated",
            order_id=str(order.id),
            old_payment_status=old,
            new_payment_status=payment_status,
        )
        return order

    def delete_order(self, order_id: UUID, actor: Principal) -> None:
        """Administrative hard delete.

        Stock is restored unless the order was Delivered or Cancelled
        (a cancelled order already gave its stock back).  Items that have
        already shipped keep their stock spent.

        Raises:
            OrderNotFound, Forbidden, ConcurrentModification.
        """
        if actor.role != Role.ADMIN:
            raise Forbidden("Only admins can delete orders.")

        order = self.get_order(str(order_id))
        restore = order.status not in (OrderStatus.DELIVERED, OrderStatus.CANCELLED)
        lines = order.undispatched_stock_lines()

        with transaction.atomic():
            order.add_domain_event(
                OrderDeleted(
                    aggregate_id=order.id,
                    customer_id=order.customer_id,
                    order_number=order.order_number,
                    stock_restored=restore,
                )
            )
            self._order_repo.delete(order)
            if restore:
                self._ledger.release(lines)

        logger.info(
            "order.deleted_by_admin",
            order_id=str(order_id),
            status=order.status,
            stock_restored=restore,
            actor=actor.id,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_order(self, order_id: str) -> Order:
        """Retrieve a single order by ID.

        Raises:
            OrderNotFound: if the order does not exist.
        """
        order = self._order_repo.get_by_id(order_id)
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")
        return order

    def get_order_for(self, order_id: str, viewer: Principal) -> Order:
        """Retrieve an order the viewer is allowed to see.

        Customers see their own orders, vendors orders containing their
        items, staff every order.

        Raises:
            OrderNotFound, Forbidden.
        """
        order = self.get_order(order_id)
        if viewer.role == Role.CUSTOMER and order.customer_id != viewer.id:
            raise Forbidden("This order belongs to another customer.")
        if viewer.role == Role.VENDOR and viewer.id not in order.vendor_ids():
            raise Forbidden("Order does not contain any of your items.")
        return order

    def list_orders(self, filters: Optional[Dict[str, Any]] = None) -> models.QuerySet[Order]:
        """Return orders, optionally filtered."""
        return self._order_repo.list(filters)

    def list_orders_for_vendor(self, vendor_id: str) -> models.QuerySet[Order]:
        return self._order_repo.list_for_vendor(vendor_id)

    def order_history_for_customer(self, customer_id: str) -> models.QuerySet[Order]:
        return self._order_repo.list({"customer_id": customer_id})

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _replay(self, dto: CreateOrderDTO) -> Optional[Order]:
        existing = self._order_repo.get_by_idempotency_key(dto.idempotency_key)
        if existing is None:
            return None
        if existing.customer_id != dto.customer_id:
            raise Forbidden("Idempotency key already used by another customer.")
        logger.info(
            "order.idempotency_hit",
            order_id=str(existing.id),
            key=dto.idempotency_key,
        )
        return existing

    def _load_orderable_products(self, items: List[OrderItemDTO]) -> Dict[UUID, Product]:
        products = self._product_repo.get_many(item.product_id for item in items)
        for item in sorted(items, key=lambda i: str(i.product_id)):
            product = products.get(item.product_id)
            if product is None:
                raise ProductNotFound(f"Product {item.product_id} not found.")
            if not product.is_active:
                raise InactiveProduct(f"Product {item.product_id} is inactive.")
        return products

    @staticmethod
    def _item_data(item: OrderItemDTO, product: Product) -> Dict[str, Any]:
        return {
            "product_id": product.id,
            "vendor_id": product.vendor_id,
            "quantity": item.quantity,
            "unit_price": product.price,
        }
