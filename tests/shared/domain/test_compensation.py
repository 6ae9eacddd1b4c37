"""Compensation rules: which stock movements each business event implies."""

import json
from datetime import UTC, datetime

import pytest
from shared import compensation
from shared.events.shipping import ExchangeApproved, ExchangeReturnCompleted


def _exchange(event_cls, original="A", new="B", quantity=2):
    stamp = {"approved_at" if event_cls is ExchangeApproved else "completed_at": datetime.now(UTC)}
    return event_cls(exchange_id="ex-1", order_id="100", original_sku_id=original, new_sku_id=new, quantity=quantity, **stamp)


class TestParseItems:
    def test_repeated_skus_are_merged(self):
        items = json.dumps([{"sku_id": 1, "quantity": 2}, {"sku_id": "1", "quantity": 3}, {"sku_id": "2", "quantity": 1}])

        assert compensation.parse_items(items) == [{"sku_id": "1", "quantity": 5}, {"sku_id": "2", "quantity": 1}]

    @pytest.mark.parametrize("quantity", [0, -2])
    def test_non_positive_quantity_is_rejected(self, quantity):
        with pytest.raises(ValueError):
            compensation.parse_items([{"sku_id": "1", "quantity": quantity}])


class TestOrderMovements:
    def test_decrease_and_restore_cancel_out(self):
        items = json.dumps([{"sku_id": "1", "quantity": 2, "unit_price": 5.0}, {"sku_id": "2", "quantity": 1}])

        decreases = compensation.order_decreases("100", items)
        restores = compensation.order_restores("100", items, compensation.Reasons.ORDER_CANCELLED)

        net = {}
        for movement in decreases:
            net[movement.sku_id] = net.get(movement.sku_id, 0) - movement.quantity
        for movement in restores:
            net[movement.sku_id] = net.get(movement.sku_id, 0) + movement.quantity
        assert net == {"1": 0, "2": 0}

    def test_movement_ids_are_stable_per_order_and_sku(self):
        [decrease] = compensation.order_decreases("100", [{"sku_id": "1", "quantity": 2}])
        [restore] = compensation.order_restores("100", [{"sku_id": "1", "quantity": 2}], "ORDER_CANCELLED")

        assert decrease.movement_id == "order-100-decrease-1"
        assert restore.movement_id == "order-100-increase-1"
        assert decrease.reason == "ORDER_CREATED"
        assert restore.reference_id == "100"


class TestExchangeMovements:
    def test_approval_takes_the_new_sku(self):
        [movement] = compensation.exchange_approved(_exchange(ExchangeApproved))

        assert (movement.sku_id, movement.quantity) == ("B", 2)
        assert movement.reason == compensation.Reasons.EXCHANGE_APPROVED

    def test_return_gives_back_the_original_sku(self):
        [movement] = compensation.exchange_return_completed(_exchange(ExchangeReturnCompleted))

        assert (movement.sku_id, movement.quantity) == ("A", 2)
        assert movement.reason == compensation.Reasons.EXCHANGE_RETURNED

    def test_same_sku_exchange_moves_nothing(self):
        assert compensation.exchange_approved(_exchange(ExchangeApproved, new="A")) == []
        assert compensation.exchange_return_completed(_exchange(ExchangeReturnCompleted, new="A")) == []
