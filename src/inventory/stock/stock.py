"""SkuStock aggregate: on-hand quantity of one SKU, plus its commands.

The quantity never goes negative: a decrease larger than the stock on hand
is rejected as a whole.
"""

from datetime import UTC, datetime

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import DateTime, Integer, String
from protean.utils.globals import current_domain

from inventory.domain import inventory

logger = structlog.get_logger(__name__)


@inventory.aggregate
class SkuStock:
    sku_id: String(identifier=True, max_length=100)
    name: String(max_length=255)
    stock_qty: Integer(default=0, min_value=0)
    updated_at: DateTime()

    def can_supply(self, quantity) -> bool:
        return self.stock_qty >= quantity

    def decrease(self, quantity):
        if quantity <= 0:
            raise ValidationError({"quantity": ["Quantity must be positive"]})
        if not self.can_supply(quantity):
            raise ValidationError(
                {"stock_qty": [f"Insufficient stock for SKU {self.sku_id}: requested {quantity}, available {self.stock_qty}"]}
            )
        self.stock_qty -= quantity
        self.updated_at = datetime.now(UTC)

    def increase(self, quantity):
        if quantity <= 0:
            raise ValidationError({"quantity": ["Quantity must be positive"]})
        self.stock_qty += quantity
        self.updated_at = datetime.now(UTC)


@inventory.command(part_of="SkuStock")
class RegisterSku:
    sku_id = String(required=True, max_length=100)
    name = String(max_length=255)
    initial_quantity = Integer(default=0, min_value=0)


@inventory.command(part_of="SkuStock")
class ReceiveStock:
    sku_id = String(required=True, max_length=100)
    quantity = Integer(required=True, min_value=1)


@inventory.command_handler(part_of=SkuStock)
class SkuStockHandler:
    @handle(RegisterSku)
    def register_sku(self, command):
        stock = SkuStock(
            sku_id=command.sku_id,
            name=command.name,
            stock_qty=command.initial_quantity or 0,
            updated_at=datetime.now(UTC),
        )
        current_domain.repository_for(SkuStock).add(stock)
        logger.info("SKU registered", sku_id=command.sku_id, stock_qty=stock.stock_qty)
        return command.sku_id

    @handle(ReceiveStock)
    def receive_stock(self, command):
        repo = current_domain.repository_for(SkuStock)
        stock = repo.get(command.sku_id)
        stock.increase(command.quantity)
        repo.add(stock)
        return stock.stock_qty
