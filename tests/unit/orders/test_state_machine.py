"""Unit tests for the shared order state machine.

Covers:
- Every allowed transition and the error raised for the rest.
- Cancellation soundness: allowed only from Pending and Processing.
- Role authority for aggregate and item status changes.
- Forward-only item moves and the derived aggregate status.
"""

from __future__ import annotations

import pytest

from modules.core.identity import Principal, Role
from modules.orders import state_machine
from modules.orders.constants import (
    CANCELLABLE_STATES,
    VALID_TRANSITIONS,
    OrderStatus,
)
from modules.orders.exceptions import (
    AlreadyCancelled,
    Forbidden,
    InvalidTransition,
    OrderLocked,
)

pytestmark = pytest.mark.unit

ALL_STATUSES = list(OrderStatus.values)
ALL_DELIVERED = [OrderStatus.DELIVERED, OrderStatus.DELIVERED]
HALF_DELIVERED = [OrderStatus.DELIVERED, OrderStatus.SHIPPED]

ADMIN = Principal(id="admin-1", role=Role.ADMIN)
CSR = Principal(id="csr-1", role=Role.CSR)
VENDOR = Principal(id="vendor-1", role=Role.VENDOR)
CUSTOMER = Principal(id="customer-1", role=Role.CUSTOMER)


# ---------------------------------------------------------------------------
# Aggregate transitions
# ---------------------------------------------------------------------------


class TestCheckTransition:
    @pytest.mark.parametrize(
        ("current", "target"),
        [
            (OrderStatus.PENDING, OrderStatus.PROCESSING),
            (OrderStatus.PENDING, OrderStatus.CANCELLED),
            (OrderStatus.PROCESSING, OrderStatus.SHIPPED),
            (OrderStatus.PROCESSING, OrderStatus.CANCELLED),
        ],
    )
    def test_forward_transitions_allowed(self, current, target):
        state_machine.check_transition(current, target, [OrderStatus.PENDING])

    def test_delivered_requires_every_item_delivered(self):
        state_machine.check_transition(OrderStatus.SHIPPED, OrderStatus.DELIVERED, ALL_DELIVERED)
        with pytest.raises(InvalidTransition):
            state_machine.check_transition(
                OrderStatus.SHIPPED, OrderStatus.DELIVERED, HALF_DELIVERED
            )

    def test_partially_delivered_requires_a_mix(self):
        state_machine.check_transition(
            OrderStatus.SHIPPED, OrderStatus.PARTIALLY_DELIVERED, HALF_DELIVERED
        )
        with pytest.raises(InvalidTransition):
            state_machine.check_transition(
                OrderStatus.SHIPPED, OrderStatus.PARTIALLY_DELIVERED, ALL_DELIVERED
            )

    def test_partially_delivered_completes_to_delivered(self):
        state_machine.check_transition(
            OrderStatus.PARTIALLY_DELIVERED, OrderStatus.DELIVERED, ALL_DELIVERED
        )

    @pytest.mark.parametrize(
        ("current", "target"),
        [
            (OrderStatus.PENDING, OrderStatus.SHIPPED),
            (OrderStatus.PENDING, OrderStatus.DELIVERED),
            (OrderStatus.PROCESSING, OrderStatus.PENDING),
            (OrderStatus.PENDING, OrderStatus.PENDING),
        ],
    )
    def test_skips_and_reversals_are_invalid(self, current, target):
        with pytest.raises(InvalidTransition):
            state_machine.check_transition(current, target, [OrderStatus.PENDING])

    @pytest.mark.parametrize("target", [OrderStatus.PENDING, OrderStatus.PROCESSING])
    def test_dispatched_orders_are_locked(self, target):
        with pytest.raises(OrderLocked):
            state_machine.check_transition(OrderStatus.SHIPPED, target, HALF_DELIVERED)

    @pytest.mark.parametrize("target", [s for s in ALL_STATUSES if s != OrderStatus.CANCELLED])
    def test_cancelled_orders_are_locked(self, target):
        with pytest.raises(OrderLocked):
            state_machine.check_transition(OrderStatus.CANCELLED, target, ALL_DELIVERED)

    def test_unknown_target_is_invalid(self):
        with pytest.raises(InvalidTransition):
            state_machine.check_transition(OrderStatus.PENDING, "Teleported")

    @pytest.mark.parametrize("current", [OrderStatus.DELIVERED, OrderStatus.CANCELLED])
    def test_terminal_states_have_no_exit(self, current):
        assert not VALID_TRANSITIONS[current]


class TestCancellationSoundness:
    """Cancelling succeeds iff the order is Pending or Processing."""

    @pytest.mark.parametrize("current", ALL_STATUSES)
    def test_cancellable_only_before_dispatch(self, current):
        if current in CANCELLABLE_STATES:
            state_machine.check_cancellable(current)
            return
        with pytest.raises(InvalidTransition):
            state_machine.check_cancellable(current)

    def test_cancelling_twice_reports_already_cancelled(self):
        with pytest.raises(AlreadyCancelled):
            state_machine.check_cancellable(OrderStatus.CANCELLED)

    @pytest.mark.parametrize(
        "current",
        [OrderStatus.SHIPPED, OrderStatus.PARTIALLY_DELIVERED, OrderStatus.DELIVERED],
    )
    def test_dispatched_orders_cannot_be_cancelled(self, current):
        with pytest.raises(InvalidTransition):
            state_machine.check_cancellable(current)

    @pytest.mark.parametrize("item_status", [OrderStatus.SHIPPED, OrderStatus.DELIVERED])
    def test_shipped_items_block_cancellation(self, item_status):
        with pytest.raises(InvalidTransition):
            state_machine.check_cancellable(
                OrderStatus.PROCESSING, [OrderStatus.PROCESSING, item_status]
            )

    def test_undispatched_items_allow_cancellation(self):
        state_machine.check_cancellable(
            OrderStatus.PROCESSING, [OrderStatus.PENDING, OrderStatus.PROCESSING]
        )



class TestCheckMutable:
    @pytest.mark.parametrize("current", [OrderStatus.PENDING, OrderStatus.PROCESSING])
    def test_editable_states(self, current):
        state_machine.check_mutable(current)

    @pytest.mark.parametrize(
        "current",
        [
            OrderStatus.SHIPPED,
            OrderStatus.PARTIALLY_DELIVERED,
            OrderStatus.DELIVERED,
            OrderStatus.CANCELLED,
        ],
    )
    def test_locked_states(self, current):
        with pytest.raises(OrderLocked):
            state_machine.check_mutable(current)


class TestCheckItemEdits:
    def test_undispatched_items_may_change(self):
        state_machine.check_item_edits(
            [("a", OrderStatus.PROCESSING, 2), ("b", OrderStatus.PENDING, 1)], {"a": 5}
        )

    def test_shipped_item_kept_as_is(self):
        state_machine.check_item_edits(
            [("a", OrderStatus.SHIPPED, 2), ("b", OrderStatus.PENDING, 1)], {"a": 2, "c": 1}
        )

    @pytest.mark.parametrize("requested", [{"b": 1}, {"a": 1, "b": 1}, {"a": 3, "b": 1}])
    @pytest.mark.parametrize("item_status", [OrderStatus.SHIPPED, OrderStatus.DELIVERED])
    def test_dispatched_item_cannot_be_removed_or_resized(self, requested, item_status):
        with pytest.raises(OrderLocked):
            state_machine.check_item_edits(
                [("a", item_status, 2), ("b", OrderStatus.PENDING, 1)], requested
            )



# ---------------------------------------------------------------------------
# Role authority
# ---------------------------------------------------------------------------


class TestStatusAuthority:
    @pytest.mark.parametrize("actor", [ADMIN, CSR])
    def test_staff_may_set_any_status(self, actor):
        for target in ALL_STATUSES:
            state_machine.check_status_authority(actor, target, [])

    def test_vendor_limited_to_own_orders(self):
        state_machine.check_status_authority(VENDOR, OrderStatus.SHIPPED, ["vendor-1"])
        with pytest.raises(Forbidden):
            state_machine.check_status_authority(VENDOR, OrderStatus.SHIPPED, ["vendor-2"])

    def test_vendor_cannot_set_delivery_statuses(self):
        with pytest.raises(Forbidden):
            state_machine.check_status_authority(VENDOR, OrderStatus.DELIVERED, ["vendor-1"])

    def test_customer_never_drives_status(self):
        with pytest.raises(Forbidden):
            state_machine.check_status_authority(CUSTOMER, OrderStatus.CANCELLED, [])

    def test_item_authority(self):
        state_machine.check_item_authority(VENDOR, "vendor-1")
        state_machine.check_item_authority(CSR, "vendor-9")
        with pytest.raises(Forbidden):
            state_machine.check_item_authority(VENDOR, "vendor-2")
        with pytest.raises(Forbidden):
            state_machine.check_item_authority(CUSTOMER, "vendor-1")


# ---------------------------------------------------------------------------
# Item status
# ---------------------------------------------------------------------------


class TestItemTransitions:
    def test_forward_moves_may_skip_steps(self):
        assert state_machine.check_item_transition(
            OrderStatus.PENDING, OrderStatus.PENDING, OrderStatus.DELIVERED
        )

    def test_same_status_is_a_no_op(self):
        assert not state_machine.check_item_transition(
            OrderStatus.SHIPPED, OrderStatus.SHIPPED, OrderStatus.SHIPPED
        )

    def test_backward_move_is_invalid(self):
        with pytest.raises(InvalidTransition):
            state_machine.check_item_transition(
                OrderStatus.SHIPPED, OrderStatus.SHIPPED, OrderStatus.PROCESSING
            )

    def test_cancelled_is_not_an_item_status(self):
        with pytest.raises(InvalidTransition):
            state_machine.check_item_transition(
                OrderStatus.PENDING, OrderStatus.PENDING, OrderStatus.CANCELLED
            )

    @pytest.mark.parametrize("order_status", [OrderStatus.CANCELLED, OrderStatus.DELIVERED])
    def test_terminal_orders_lock_their_items(self, order_status):
        with pytest.raises(OrderLocked):
            state_machine.check_item_transition(
                order_status, OrderStatus.PENDING, OrderStatus.SHIPPED
            )


class TestDeriveStatus:
    def test_all_delivered(self):
        assert state_machine.derive_status(OrderStatus.SHIPPED, ALL_DELIVERED) == (
            OrderStatus.DELIVERED
        )

    def test_some_delivered(self):
        assert state_machine.derive_status(OrderStatus.PENDING, HALF_DELIVERED) == (
            OrderStatus.PARTIALLY_DELIVERED
        )

    def test_none_delivered_keeps_current(self):
        statuses = [OrderStatus.SHIPPED, OrderStatus.PENDING]
        assert state_machine.derive_status(OrderStatus.PROCESSING, statuses) == (
            OrderStatus.PROCESSING
        )

    def test_terminal_status_never_changes(self):
        assert state_machine.derive_status(OrderStatus.CANCELLED, ALL_DELIVERED) == (
            OrderStatus.CANCELLED
        )

    def test_recompute_is_idempotent(self):
        first = state_machine.derive_status(OrderStatus.SHIPPED, HALF_DELIVERED)
        second = state_machine.derive_status(first, HALF_DELIVERED)
        assert first == second == OrderStatus.PARTIALLY_DELIVERED


class TestItemsToAdvance:
    def test_shipping_lifts_pending_and_processing_items(self):
        assert state_machine.items_to_advance(OrderStatus.SHIPPED) == [
            OrderStatus.PENDING,
            OrderStatus.PROCESSING,
        ]

    def test_delivery_does_not_cascade(self):
        assert state_machine.items_to_advance(OrderStatus.DELIVERED) == []
