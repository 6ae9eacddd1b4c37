"""Inbound Ordering events: allocate stock for new orders, restore it for cancelled ones."""

from shared.compensation import Reasons
from shared.events.catalog import Topics
from shared.events.ordering import OrderCancelled, OrderCreated

from inventory.bus import consumer
from inventory.stock.allocation import allocate_order, release_order


@consumer.subscribe(Topics.ORDER_CREATED, event_type=OrderCreated, key=lambda event: event.order_id)
def on_order_created(event: OrderCreated):
    return allocate_order(event.order_id, event.items)


@consumer.subscribe(Topics.ORDER_CANCELLED, event_type=OrderCancelled, key=lambda event: event.order_id)
def on_order_cancelled(event: OrderCancelled):
    return release_order(event.order_id, f"{Reasons.ORDER_CANCELLED}:{event.reason}")
