"""Inbound Payments events: a cancelled payment gives the order's stock back."""

from shared.compensation import Reasons
from shared.events.catalog import Topics
from shared.events.payments import PaymentCancelled

from inventory.bus import consumer
from inventory.stock.allocation import release_order


@consumer.subscribe(Topics.PAYMENT_CANCELLED, event_type=PaymentCancelled, key=lambda event: event.payment_id)
def on_payment_cancelled(event: PaymentCancelled):
    return release_order(event.order_id, f"{Reasons.PAYMENT_CANCELLED}:{event.reason}")
