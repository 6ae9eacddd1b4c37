"""Domain tests for Shipment, Exchange and ReturnRequest state machines."""

import pytest
from protean.exceptions import ValidationError
from shipping.exchange.exchange import Exchange, ExchangeStatus
from shipping.returns.return_request import ReturnRequest, ReturnStatus
from shipping.shipment.shipment import Shipment, ShipmentStatus


class TestShipment:
    def test_dispatch_and_deliver(self):
        shipment = Shipment.prepare("100", payment_id="pay-1")

        shipped = shipment.dispatch("TRK-1")
        delivered = shipment.deliver()

        assert shipment.status == ShipmentStatus.DELIVERED.value
        assert shipped.tracking_number == "TRK-1"
        assert delivered.order_id == "100"

    def test_only_ready_shipments_can_be_cancelled(self):
        shipment = Shipment.prepare("100")
        shipment.dispatch("TRK-1")

        with pytest.raises(ValidationError):
            shipment.cancel("USER_REQUEST")

    def test_cancelled_shipment_cannot_be_dispatched(self):
        shipment = Shipment.prepare("100")
        shipment.cancel("USER_REQUEST")

        with pytest.raises(ValidationError):
            shipment.dispatch("TRK-1")


class TestExchange:
    def _exchange(self, new_sku_id="B"):
        return Exchange.request("100", original_sku_id="A", new_sku_id=new_sku_id, quantity=1)

    def test_full_exchange(self):
        exchange = self._exchange()

        approved = exchange.approve()
        returned = exchange.complete_return()
        completed = exchange.complete()

        assert exchange.status == ExchangeStatus.EXCHANGED.value
        assert (approved.original_sku_id, approved.new_sku_id) == ("A", "B")
        assert returned.quantity == 1
        assert completed.exchange_id == str(exchange.id)

    def test_cannot_complete_before_item_returns(self):
        exchange = self._exchange()
        exchange.approve()

        with pytest.raises(ValidationError):
            exchange.complete()

    def test_return_is_received_once(self):
        exchange = self._exchange()
        exchange.approve()
        exchange.complete_return()

        with pytest.raises(ValidationError):
            exchange.complete_return()

    def test_unapproved_exchange_cannot_receive_the_item(self):
        with pytest.raises(ValidationError):
            self._exchange().complete_return()

    def test_rejected_exchange_is_terminal(self):
        exchange = self._exchange()
        exchange.reject("out of policy")

        assert exchange.rejection_reason == "out of policy"
        with pytest.raises(ValidationError):
            exchange.approve()

    def test_same_sku_exchange(self):
        assert self._exchange(new_sku_id="A").changes_sku is False


class TestReturnRequest:
    def test_approve_and_complete(self):
        return_request = ReturnRequest.request("100", reason="damaged")
        return_request.approve()

        event = return_request.complete()

        assert return_request.status == ReturnStatus.RETURNED.value
        assert event.order_id == "100"
        assert event.reason == "damaged"

    def test_cannot_complete_unapproved_return(self):
        with pytest.raises(ValidationError):
            ReturnRequest.request("100").complete()
