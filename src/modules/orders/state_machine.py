"""Order state machine shared by every role-scoped entry point.

All guards live here so the admin, CSR, vendor and customer surfaces
cannot drift apart.  Functions raise domain errors and return nothing
(or the derived status); they never touch the database.

Transition table (``VALID_TRANSITIONS``)::

    Pending     -> Processing | Cancelled
    Processing  -> Shipped | Cancelled
    Shipped     -> Delivered | PartiallyDelivered
    PartiallyDelivered -> Delivered

Error precedence for a requested target status:

* Cancelled order: ``AlreadyCancelled`` for another cancel, otherwise
  ``OrderLocked``.
* Dispatched order (Shipped, PartiallyDelivered, Delivered): cancelling
  is an ``InvalidTransition``; any other change outside the delivery
  completion transitions is ``OrderLocked``.
* An order with a Shipped or Delivered item cannot be cancelled, and
  edits may not remove or resize such an item (``OrderLocked``).
* Anything else outside the table is an ``InvalidTransition``.
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Optional, Tuple

from modules.core.identity import Principal, Role
from modules.orders.constants import (
    DISPATCHED_ITEM_STATES,
    DISPATCHED_STATES,
    ITEM_STATUS_SEQUENCE,
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    OrderStatus,
)
from modules.orders.exceptions import (
    AlreadyCancelled,
    Forbidden,
    InvalidTransition,
    OrderLocked,
)

VENDOR_SETTABLE_STATUSES: frozenset[str] = frozenset(
    {OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.CANCELLED}
)

_ITEM_RANK = {status: rank for rank, status in enumerate(ITEM_STATUS_SEQUENCE)}


# ---------------------------------------------------------------------------
# Aggregate transitions
# ---------------------------------------------------------------------------


def check_transition(
    current: str,
    target: str,
    item_statuses: Optional[Iterable[str]] = None,
) -> None:
    """Raise unless ``current -> target`` is allowed for the aggregate.

    ``item_statuses`` is required to validate the delivery targets.
    """
    if target not in OrderStatus.values:
        raise InvalidTransition(f"Unknown status {target!r}.")

    if current == OrderStatus.CANCELLED:
        if target == OrderStatus.CANCELLED:
            raise AlreadyCancelled("Order is already cancelled.")
        raise OrderLocked("Order is cancelled and can no longer change.")

    if current in DISPATCHED_STATES:
        if target == OrderStatus.CANCELLED:
            raise InvalidTransition(f"Cannot cancel an order that is {current}.")
        if target not in VALID_TRANSITIONS[current]:
            raise OrderLocked(f"Order is {current} and can no longer change.")

    elif target not in VALID_TRANSITIONS[current]:
        raise InvalidTransition(f"Cannot transition from {current} to {target}.")

    if target in (OrderStatus.DELIVERED, OrderStatus.PARTIALLY_DELIVERED):
        statuses = list(item_statuses or [])
        delivered = sum(1 for s in statuses if s == OrderStatus.DELIVERED)
        if target == OrderStatus.DELIVERED and (not statuses or delivered < len(statuses)):
            raise InvalidTransition("Every item must be delivered first.")
        if target == OrderStatus.PARTIALLY_DELIVERED and not (
            0 < delivered < len(statuses)
        ):
            raise InvalidTransition(
                "Partial delivery needs some items delivered and some pending."
            )


def check_cancellable(current: str, item_statuses: Iterable[str] = ()) -> None:
    """Raise unless an order in ``current`` may be cancelled.

    An order whose items have already shipped cannot be cancelled even
    while the aggregate is still Processing.
    """
    check_transition(current, OrderStatus.CANCELLED)
    if any(status in DISPATCHED_ITEM_STATES for status in item_statuses):
        raise InvalidTransition("Cannot cancel an order with items already shipped.")


def check_mutable(current: str) -> None:
    """Raise unless items, address or note may still be edited."""
    if current == OrderStatus.CANCELLED:
        raise OrderLocked("Order is cancelled and can no longer change.")
    if current in DISPATCHED_STATES:
        raise OrderLocked(f"Order is {current} and can no longer change.")


def check_item_edits(
    current: Iterable[Tuple[Any, str, int]], requested: Mapping[Any, int]
) -> None:
    """Raise ``OrderLocked`` if an edit removes or resizes a dispatched item.

    ``current`` holds ``(product_id, status, quantity)`` per existing item,
    ``requested`` the new quantity per product.
    """
    for product_id, status, quantity in current:
        if status not in DISPATCHED_ITEM_STATES:
            continue
        if requested.get(product_id) != quantity:
            raise OrderLocked(f"Item {product_id} is {status} and can no longer change.")


# ---------------------------------------------------------------------------
# Role authority
# ---------------------------------------------------------------------------


def check_status_authority(actor: Principal, target: str, vendor_ids: Iterable[str]) -> None:
    """Raise ``Forbidden`` unless ``actor`` may set the aggregate status.

    Admin and CSR may drive any transition.  Vendors may move orders that
    contain their items to Processing, Shipped or Cancelled.  Customers
    never drive status directly; they file a cancel request instead.
    """
    if actor.role in (Role.ADMIN, Role.CSR):
        return
    if actor.role == Role.VENDOR:
        if actor.id not in set(vendor_ids):
            raise Forbidden("Order does not contain any of your items.")
        if target not in VENDOR_SETTABLE_STATUSES:
            raise Forbidden(f"Vendors cannot set status {target}.")
        return
    raise Forbidden("Your role cannot change order status.")


def check_item_authority(actor: Principal, item_vendor_id: str) -> None:
    if actor.role in (Role.ADMIN, Role.CSR):
        return
    if actor.role == Role.VENDOR and actor.id == item_vendor_id:
        return
    raise Forbidden("You can only update your own items.")


# ---------------------------------------------------------------------------
# Item status
# ---------------------------------------------------------------------------


def check_item_transition(order_status: str, current: str, target: str) -> bool:
    """Validate an item status change.

    Returns ``False`` when ``target`` equals ``current`` (nothing to do).
    Items move forward only and may skip steps.
    """
    if order_status in TERMINAL_STATES:
        raise OrderLocked(f"Order is {order_status} and can no longer change.")
    if target not in _ITEM_RANK:
        raise InvalidTransition(f"Items cannot be set to {target}.")
    if target == current:
        return False
    if _ITEM_RANK[target] < _ITEM_RANK[current]:
        raise InvalidTransition(f"Item cannot go back from {current} to {target}.")
    return True


def derive_status(current: str, item_statuses: Iterable[str]) -> str:
    """Aggregate status implied by the item statuses.

    All items Delivered gives Delivered; at least one Delivered and one not
    gives PartiallyDelivered; otherwise ``current`` is kept.  Terminal
    statuses are never changed.  Calling it twice yields the same result.
    """
    if current in TERMINAL_STATES:
        return current
    statuses = list(item_statuses)
    if not statuses:
        return current
    delivered = sum(1 for s in statuses if s == OrderStatus.DELIVERED)
    if delivered == len(statuses):
        return OrderStatus.DELIVERED
    if delivered:
        return OrderStatus.PARTIALLY_DELIVERED
    return current


def items_to_advance(target: str) -> list[str]:
    """Item statuses lifted to ``target`` when the aggregate moves forward.

    Only Processing and Shipped cascade; delivery is item-driven.
    """
    if target not in (OrderStatus.PROCESSING, OrderStatus.SHIPPED):
        return []
    return [s for s in ITEM_STATUS_SEQUENCE if _ITEM_RANK[s] < _ITEM_RANK[target]]
