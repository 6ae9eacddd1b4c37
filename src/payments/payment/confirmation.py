"""Payment capture and failure: commands and handler.

A confirmation whose amount differs from the order total cancels the payment
instead, which fails the order and releases its stock downstream.
"""

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import Float, Identifier, String
from protean.utils.globals import current_domain

from payments.bus import outbox
from payments.domain import payments
from payments.payment.payment import CancelReason, Payment, PaymentStatus, payment_for_order

logger = structlog.get_logger(__name__)


@payments.command(part_of="Payment")
class ConfirmPayment:
    order_id = Identifier(required=True)
    amount = Float(required=True)
    payment_key = String(max_length=200)


@payments.command(part_of="Payment")
class FailPayment:
    order_id = Identifier(required=True)
    reason = String(default=CancelReason.PAYMENT_FAILED.value, max_length=100)


def _pending_payment(repo, order_id):
    payment = payment_for_order(repo, order_id)
    if payment is None:
        raise ObjectNotFoundError(f"No payment exists for order {order_id}")
    return payment


@payments.command_handler(part_of=Payment)
class PaymentCaptureHandler:
    @handle(ConfirmPayment)
    def confirm_payment(self, command):
        repo = current_domain.repository_for(Payment)
        payment = _pending_payment(repo, command.order_id)

        if payment.matches(command.amount):
            event = payment.confirm(command.amount, payment_key=command.payment_key)
            logger.info("Payment confirmed", payment_id=str(payment.id), order_id=str(payment.order_id))
        else:
            event = payment.cancel(CancelReason.AMOUNT_MISMATCH.value)
            logger.warning(
                "Payment amount mismatch",
                payment_id=str(payment.id),
                order_id=str(payment.order_id),
                expected=payment.amount,
                received=command.amount,
            )

        repo.add(payment)
        outbox.append(event, "Payment", payment.id)
        return PaymentStatus(payment.status).value

    @handle(FailPayment)
    def fail_payment(self, command):
        repo = current_domain.repository_for(Payment)
        payment = _pending_payment(repo, command.order_id)

        event = payment.cancel(command.reason)
        repo.add(payment)
        outbox.append(event, "Payment", payment.id)

        logger.info("Payment failed", payment_id=str(payment.id), order_id=str(payment.order_id), reason=command.reason)
        return PaymentStatus(payment.status).value
