"""Stock movements: applying compensation events to SKU stock.

``inventory.decrease`` and ``inventory.increase`` messages are consumed here,
keyed by ``movement_id`` so a redelivered movement is never applied twice. An
unknown SKU or insufficient stock raises, which sends the movement through the
retry chain and, if it keeps failing, to the dead-letter store.
"""

import structlog
from protean.utils.globals import current_domain
from shared.events.catalog import Topics
from shared.events.inventory import InventoryDecrease, InventoryIncrease

from inventory.bus import consumer
from inventory.stock.stock import SkuStock

logger = structlog.get_logger(__name__)


def apply_movement(movement) -> int:
    """Apply one increase or decrease and return the new stock quantity."""
    repo = current_domain.repository_for(SkuStock)
    stock = repo.get(movement.sku_id)

    if isinstance(movement, InventoryDecrease):
        stock.decrease(movement.quantity)
    else:
        stock.increase(movement.quantity)
    repo.add(stock)

    logger.info(
        "Stock moved",
        movement_id=movement.movement_id,
        sku_id=movement.sku_id,
        delta=-movement.quantity if isinstance(movement, InventoryDecrease) else movement.quantity,
        stock_qty=stock.stock_qty,
        reason=movement.reason,
    )
    return stock.stock_qty


@consumer.subscribe(Topics.INVENTORY_DECREASE, event_type=InventoryDecrease, key=lambda event: event.movement_id)
def on_inventory_decrease(event: InventoryDecrease):
    remaining = apply_movement(event)
    return f"decreased {event.sku_id} by {event.quantity}, {remaining} left"


@consumer.subscribe(Topics.INVENTORY_INCREASE, event_type=InventoryIncrease, key=lambda event: event.movement_id)
def on_inventory_increase(event: InventoryIncrease):
    remaining = apply_movement(event)
    return f"increased {event.sku_id} by {event.quantity}, {remaining} on hand"
