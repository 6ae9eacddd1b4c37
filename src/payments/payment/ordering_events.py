"""Inbound Ordering events: open, void or refund the order's payment."""

import structlog
from protean.utils.globals import current_domain
from shared.events.catalog import Topics
from shared.events.ordering import OrderCancelled, OrderCreated

from payments.bus import consumer, outbox
from payments.payment.payment import CancelReason, Payment, PaymentStatus, payment_for_order

logger = structlog.get_logger(__name__)


@consumer.subscribe(Topics.ORDER_CREATED, event_type=OrderCreated, key=lambda event: event.order_id)
def on_order_created(event: OrderCreated):
    repo = current_domain.repository_for(Payment)
    if payment_for_order(repo, event.order_id) is not None:
        return "payment already open"

    payment = Payment.open_for_order(event.order_id, event.total_amount, items=event.items)
    repo.add(payment)
    return f"payment {payment.id} opened"


@consumer.subscribe(Topics.ORDER_CANCELLED, event_type=OrderCancelled, key=lambda event: event.order_id)
def on_order_cancelled(event: OrderCancelled):
    """Void a pending payment, refund a confirmed one."""
    repo = current_domain.repository_for(Payment)
    payment = payment_for_order(repo, event.order_id)
    if payment is None:
        # Cancellation overtook creation: leave a cancelled payment so the
        # late OrderCreated does not open one
        payment = Payment.open_for_order(event.order_id, 0.0, items=event.items)
        payment.cancel(CancelReason.ORDER_CANCELLED.value)
        repo.add(payment)
        return "payment voided before creation"

    status = PaymentStatus(payment.status)
    if status == PaymentStatus.PENDING:
        # Ordering already knows the order is cancelled; nothing to announce
        payment.cancel(CancelReason.ORDER_CANCELLED.value)
        repo.add(payment)
        return "pending payment voided"

    if status == PaymentStatus.CONFIRMED:
        refund = payment.refund(event.reason)
        repo.add(payment)
        outbox.append(refund, "Payment", payment.id)
        logger.info("Payment refunded", payment_id=str(payment.id), order_id=str(payment.order_id))
        return "payment refunded"

    return f"payment already {status.value}"
