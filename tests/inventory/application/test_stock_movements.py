"""Application tests for inventory movement messages."""

import pytest
from inventory.bus import consumer
from messaging.consumer import Outcome
from protean.exceptions import ObjectNotFoundError, ValidationError
from shared.events.inventory import InventoryDecrease, InventoryIncrease


def _decrease(quantity, movement_id="exchange-ex-1-decrease-1"):
    return InventoryDecrease(movement_id=movement_id, sku_id="1", quantity=quantity, reason="EXCHANGE_APPROVED", reference_id="ex-1")


def _increase(quantity, movement_id="exchange-ex-1-increase-1"):
    return InventoryIncrease(movement_id=movement_id, sku_id="1", quantity=quantity, reason="EXCHANGE_RETURNED", reference_id="ex-1")


def test_movements_are_applied_once(register_sku, stock_of, message_for):
    register_sku("1", 10)

    assert consumer.handle(message_for(_decrease(3))) is Outcome.APPLIED
    assert consumer.handle(message_for(_decrease(3))) is Outcome.DUPLICATE
    assert stock_of("1") == 7

    consumer.handle(message_for(_increase(3)))
    assert stock_of("1") == 10


def test_insufficient_stock_raises_and_changes_nothing(register_sku, stock_of, message_for):
    register_sku("1", 2)

    with pytest.raises(ValidationError):
        consumer.handle(message_for(_decrease(3)))

    assert stock_of("1") == 2


def test_unknown_sku_raises(message_for):
    with pytest.raises(ObjectNotFoundError):
        consumer.handle(message_for(_increase(1)))
