"""Application tests for shipments driven by payment and order events."""

from datetime import UTC, datetime

import pytest
from messaging.consumer import Outcome
from protean import current_domain
from protean.exceptions import ObjectNotFoundError
from shared.events.ordering import OrderCancelled
from shared.events.payments import PaymentConfirmed
from shipping.bus import consumer
from shipping.shipment.dispatch import CompleteDelivery, DispatchShipment
from shipping.shipment.shipment import Shipment, ShipmentStatus, shipment_for_order


def _confirmed(order_id="100"):
    return PaymentConfirmed(payment_id="pay-1", order_id=order_id, amount=10.0, confirmed_at=datetime.now(UTC))


def _cancelled(order_id="100"):
    return OrderCancelled(order_id=order_id, reason="USER_REQUEST", cancelled_by="user", cancelled_at=datetime.now(UTC))


def _shipment(order_id="100"):
    return shipment_for_order(current_domain.repository_for(Shipment), order_id)


class TestPreparation:
    def test_confirmed_payment_readies_one_shipment(self, message_for):
        assert consumer.handle(message_for(_confirmed())) is Outcome.APPLIED
        assert consumer.handle(message_for(_confirmed())) is Outcome.DUPLICATE

        assert _shipment().status == ShipmentStatus.READY.value
        assert current_domain.repository_for(Shipment)._dao.query.all().total == 1


class TestDispatch:
    def test_dispatch_and_delivery_are_published(self, message_for, pending_topics):
        consumer.handle(message_for(_confirmed()))

        current_domain.process(DispatchShipment(order_id="100", tracking_number="TRK-1"), asynchronous=False)
        current_domain.process(CompleteDelivery(order_id="100"), asynchronous=False)

        assert _shipment().status == ShipmentStatus.DELIVERED.value
        assert pending_topics() == ["shipment.shipped", "shipment.delivered"]

    def test_dispatch_without_shipment(self):
        with pytest.raises(ObjectNotFoundError):
            current_domain.process(DispatchShipment(order_id="missing", tracking_number="TRK-1"), asynchronous=False)


class TestCancellation:
    def test_ready_shipment_is_cancelled(self, message_for):
        consumer.handle(message_for(_confirmed()))

        consumer.handle(message_for(_cancelled()))

        shipment = _shipment()
        assert shipment.status == ShipmentStatus.CANCELLED.value
        assert shipment.cancel_reason == "USER_REQUEST"

    def test_shipment_in_transit_is_left_alone(self, message_for):
        consumer.handle(message_for(_confirmed()))
        current_domain.process(DispatchShipment(order_id="100", tracking_number="TRK-1"), asynchronous=False)

        consumer.handle(message_for(_cancelled()))

        assert _shipment().status == ShipmentStatus.SHIPPING.value

    def test_cancellation_before_payment_blocks_the_shipment(self, message_for):
        consumer.handle(message_for(_cancelled()))
        consumer.handle(message_for(_confirmed()))

        assert _shipment().status == ShipmentStatus.CANCELLED.value
