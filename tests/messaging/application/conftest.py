import json
from datetime import UTC, datetime

import pytest

from messaging.consumer import IdempotentConsumer
from shared.events.catalog import Topics
from shared.events.ordering import OrderCreated


def _order_created(order_id="100", sku_id="1", quantity=2, unit_price=5.0):
    return OrderCreated(
        order_id=order_id,
        customer_id="cust-1",
        items=json.dumps([{"sku_id": sku_id, "quantity": quantity, "unit_price": unit_price}]),
        total_amount=quantity * unit_price,
        created_at=datetime.now(UTC),
    )


class Recorder:
    """Handler double that records events and fails on demand."""

    def __init__(self):
        self.calls = []
        self.failures_left = 0
        self.side_effect = None

    def __call__(self, event):
        self.calls.append(event.order_id)
        if self.side_effect is not None:
            self.side_effect(event)
        if self.failures_left:
            self.failures_left -= 1
            raise RuntimeError("handler exploded")
        return f"handled order {event.order_id}"


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def test_consumer(store, registry, recorder):
    from ordering.domain import ordering

    consumer = IdempotentConsumer(ordering, store, registry, group="test-group")
    consumer.subscribe(Topics.ORDER_CREATED, event_type=OrderCreated, key=lambda e: e.order_id)(recorder)
    return consumer


@pytest.fixture
def order_created():
    """Factory for OrderCreated events."""
    return _order_created
