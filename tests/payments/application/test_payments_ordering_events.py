"""Application tests for Ordering events consumed by Payments."""

import json
from datetime import UTC, datetime

from messaging.consumer import Outcome
from payments.bus import consumer, outbox
from payments.payment.confirmation import ConfirmPayment
from payments.payment.payment import Payment, PaymentStatus, payment_for_order
from protean import current_domain
from shared.events.ordering import OrderCancelled, OrderCreated

ITEMS = json.dumps([{"sku_id": "1", "quantity": 2, "unit_price": 5.0}])


def _created(order_id="100"):
    return OrderCreated(
        order_id=order_id,
        customer_id="cust-001",
        items=ITEMS,
        total_amount=10.0,
        created_at=datetime.now(UTC),
    )


def _cancelled(order_id="100", reason="USER_REQUEST"):
    return OrderCancelled(order_id=order_id, reason=reason, cancelled_by="user", items=ITEMS, cancelled_at=datetime.now(UTC))


def _payment(order_id="100"):
    return payment_for_order(current_domain.repository_for(Payment), order_id)


class TestOrderCreated:
    def test_opens_pending_payment(self, message_for):
        assert consumer.handle(message_for(_created())) is Outcome.APPLIED

        payment = _payment()
        assert payment.status == PaymentStatus.PENDING.value
        assert payment.amount == 10.0

    def test_duplicate_delivery_opens_one_payment(self, message_for):
        consumer.handle(message_for(_created()))

        assert consumer.handle(message_for(_created())) is Outcome.DUPLICATE
        assert current_domain.repository_for(Payment)._dao.query.filter(order_id="100").all().total == 1


class TestOrderCancelled:
    def test_pending_payment_is_voided_silently(self, message_for):
        consumer.handle(message_for(_created()))

        consumer.handle(message_for(_cancelled()))

        assert _payment().status == PaymentStatus.CANCELLED.value
        assert outbox.list_pending() == []

    def test_confirmed_payment_is_refunded(self, message_for):
        consumer.handle(message_for(_created()))
        current_domain.process(ConfirmPayment(order_id="100", amount=10.0), asynchronous=False)

        consumer.handle(message_for(_cancelled()))

        assert _payment().status == PaymentStatus.REFUNDED.value
        refunds = [record for record in outbox.list_pending() if record.event_type == "payment.refunded"]
        assert len(refunds) == 1
        assert json.loads(refunds[0].payload)["amount"] == 10.0

    def test_cancellation_before_creation_blocks_the_payment(self, message_for):
        consumer.handle(message_for(_cancelled()))
        consumer.handle(message_for(_created()))

        payment = _payment()
        assert payment.status == PaymentStatus.CANCELLED.value
        assert payment.cancel_reason == "ORDER_CANCELLED"
