"""Payment aggregate: one payment per order.

State Machine:
    PENDING → CONFIRMED → REFUNDED
    PENDING → CANCELLED
"""

from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, Identifier, String, Text
from shared.events.payments import PaymentCancelled, PaymentConfirmed, PaymentRefunded

from payments.domain import payments

AMOUNT_TOLERANCE = 0.005


class PaymentStatus(Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class CancelReason(Enum):
    AMOUNT_MISMATCH = "AMOUNT_MISMATCH"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    TIMEOUT = "TIMEOUT"
    ORDER_CANCELLED = "ORDER_CANCELLED"


_VALID_TRANSITIONS = {
    PaymentStatus.PENDING: {PaymentStatus.CONFIRMED, PaymentStatus.CANCELLED},
    PaymentStatus.CONFIRMED: {PaymentStatus.REFUNDED},
    PaymentStatus.CANCELLED: set(),  # Terminal
    PaymentStatus.REFUNDED: set(),  # Terminal
}


@payments.aggregate
class Payment:
    order_id: Identifier(required=True, unique=True)
    amount: Float(required=True, min_value=0.0)
    items: Text()  # JSON snapshot of the order items
    status: String(choices=PaymentStatus, default=PaymentStatus.PENDING.value, max_length=20)

    payment_key: String(max_length=200)
    paid_amount: Float()
    cancel_reason: String(max_length=100)

    created_at: DateTime()
    updated_at: DateTime()
    confirmed_at: DateTime()
    cancelled_at: DateTime()
    refunded_at: DateTime()

    @classmethod
    def open_for_order(cls, order_id, amount, items=None):
        now = datetime.now(UTC)
        return cls(
            order_id=str(order_id),
            amount=amount,
            items=items,
            status=PaymentStatus.PENDING.value,
            created_at=now,
            updated_at=now,
        )

    def _assert_can_transition(self, target_status):
        current = PaymentStatus(self.status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise ValidationError({"status": [f"Cannot transition from {current.value} to {target_status.value}"]})

    def matches(self, amount) -> bool:
        return abs(float(amount) - float(self.amount)) < AMOUNT_TOLERANCE

    def confirm(self, amount, payment_key=None):
        """Capture the payment. The amount must equal the order total."""
        if not self.matches(amount):
            raise ValidationError({"amount": [f"Paid amount {amount} does not match order amount {self.amount}"]})
        self._assert_can_transition(PaymentStatus.CONFIRMED)

        now = datetime.now(UTC)
        self.status = PaymentStatus.CONFIRMED.value
        self.paid_amount = float(amount)
        self.payment_key = payment_key
        self.confirmed_at = now
        self.updated_at = now

        return PaymentConfirmed(
            payment_id=str(self.id),
            order_id=str(self.order_id),
            amount=self.amount,
            payment_key=payment_key,
            confirmed_at=now,
        )

    def cancel(self, reason):
        self._assert_can_transition(PaymentStatus.CANCELLED)

        now = datetime.now(UTC)
        self.status = PaymentStatus.CANCELLED.value
        self.cancel_reason = reason
        self.cancelled_at = now
        self.updated_at = now

        return PaymentCancelled(
            payment_id=str(self.id),
            order_id=str(self.order_id),
            reason=reason,
            cancelled_at=now,
        )

    def refund(self, reason):
        self._assert_can_transition(PaymentStatus.REFUNDED)

        now = datetime.now(UTC)
        self.status = PaymentStatus.REFUNDED.value
        self.refunded_at = now
        self.updated_at = now

        return PaymentRefunded(
            payment_id=str(self.id),
            order_id=str(self.order_id),
            amount=self.paid_amount or self.amount,
            reason=reason,
            refunded_at=now,
        )


def payment_for_order(repo, order_id):
    """The payment of ``order_id``, or None."""
    return repo._dao.query.filter(order_id=str(order_id)).all().first
