"""Unit tests for domain events: aggregate collection and outbox round-trip."""

from __future__ import annotations

from uuid import uuid4

import pytest

from modules.orders.events import OrderCancelled, OrderCreated
from modules.orders.models import Order
from modules.products.events import LowStockDetected
from shared.domain.events import DomainEvent
from shared.infrastructure.bus import InMemoryEventBus

pytestmark = pytest.mark.unit


def test_order_registers_and_clears_domain_events():
    order = Order(customer_id="customer-1", shipping_address="Somewhere")

    assert order.domain_events == []

    event = OrderCreated(
        aggregate_id=order.id,
        customer_id="customer-1",
        order_number="ORD-TEST-000001",
        total_amount="0.00",
    )
    order.add_domain_event(event)

    assert order.domain_events == [event]
    assert event.event_name == "OrderCreated"

    order.clear_domain_events()
    assert order.domain_events == []


def test_event_survives_payload_round_trip():
    event = OrderCancelled(
        aggregate_id=uuid4(),
        customer_id="customer-1",
        order_number="ORD-20260101-ABCDEF",
        reason="Out of stock",
        cancelled_via="staff",
    )

    payload = event.to_payload()
    rebuilt = DomainEvent.from_payload("OrderCancelled", payload)

    assert rebuilt == event
    assert payload["aggregate_id"] == str(event.aggregate_id)


def test_unknown_event_name_raises_key_error():
    with pytest.raises(KeyError):
        DomainEvent.from_payload("NoSuchEvent", {"aggregate_id": str(uuid4())})


class _Recorder:
    def __init__(self):
        self.events = []

    def handle(self, event):
        self.events.append(event)


class TestInMemoryEventBus:
    def test_publish_reaches_subscribers_of_that_type_only(self):
        bus = InMemoryEventBus()
        recorder = _Recorder()
        bus.subscribe(LowStockDetected, recorder)

        event = LowStockDetected(
            aggregate_id=uuid4(), vendor_id="vendor-1", sku="SKU", name="Thing", stock=1, threshold=5
        )
        delivered = bus.publish(event)
        ignored = bus.publish(
            OrderCreated(
                aggregate_id=uuid4(), customer_id="c", order_number="n", total_amount="1.00"
            )
        )

        assert delivered == 1
        assert ignored == 0
        assert recorder.events == [event]

    def test_subscribing_twice_delivers_once(self):
        bus = InMemoryEventBus()
        recorder = _Recorder()
        bus.subscribe(LowStockDetected, recorder)
        bus.subscribe(LowStockDetected, recorder)

        assert bus.handlers_for(LowStockDetected) == [recorder]
