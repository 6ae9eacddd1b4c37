"""Inbound Payments events: Ordering follows the payment outcome."""

import structlog
from protean.utils.globals import current_domain
from shared.events.catalog import Topics
from shared.events.payments import PaymentCancelled, PaymentConfirmed

from ordering.bus import consumer
from ordering.order.order import Order, OrderStatus

logger = structlog.get_logger(__name__)


@consumer.subscribe(Topics.PAYMENT_CONFIRMED, event_type=PaymentConfirmed, key=lambda event: event.payment_id)
def on_payment_confirmed(event: PaymentConfirmed):
    """Mark the order PAID, unless it was closed in the meantime."""
    repo = current_domain.repository_for(Order)
    order = repo.get(event.order_id)

    if order.is_closed:
        # Payments refunds a confirmation that raced a cancellation
        logger.warning("Payment confirmed for closed order", order_id=str(order.id), status=order.status)
        return f"ignored: order is {order.status}"

    if not order.mark_paid():
        return "order already paid"
    repo.add(order)
    return "order marked paid"


@consumer.subscribe(Topics.PAYMENT_CANCELLED, event_type=PaymentCancelled, key=lambda event: event.payment_id)
def on_payment_cancelled(event: PaymentCancelled):
    repo = current_domain.repository_for(Order)
    order = repo.get(event.order_id)

    if order.is_closed and OrderStatus(order.status) != OrderStatus.FAILED:
        return f"ignored: order is {order.status}"
    if not order.mark_failed(f"payment cancelled: {event.reason}"):
        return "order already failed"
    repo.add(order)

    logger.info("Order failed after payment cancellation", order_id=str(order.id), reason=event.reason)
    return "order marked failed"
