"""Cross-service event contracts for stock movements.

``InventoryDecrease`` and ``InventoryIncrease`` are compensations: each carries
a deterministic ``movement_id`` that Inventory uses as its idempotency key.
"""

from protean.core.event import BaseEvent
from protean.fields import DateTime, Identifier, Integer, String, Text


class InventoryDecrease(BaseEvent):
    __version__ = 1

    movement_id = String(required=True, max_length=200)
    sku_id = String(required=True, max_length=100)
    quantity = Integer(required=True, min_value=1)
    reason = String(required=True, max_length=100)
    reference_id = Identifier(required=True)  # Order or exchange


class InventoryIncrease(BaseEvent):
    __version__ = 1

    movement_id = String(required=True, max_length=200)
    sku_id = String(required=True, max_length=100)
    quantity = Integer(required=True, min_value=1)
    reason = String(required=True, max_length=100)
    reference_id = Identifier(required=True)


class StockRejected(BaseEvent):
    """An order could not be allocated because stock was insufficient.

    Consumed by Ordering to fail and cancel the order.
    """

    __version__ = 1

    order_id = Identifier(required=True)
    rejected_items = Text(required=True)  # JSON list of {sku_id, requested, available}
    rejected_at = DateTime(required=True)
