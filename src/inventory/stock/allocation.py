"""OrderAllocation aggregate: the stock an order actually took.

The allocation is what makes order-level compensation exact: a cancellation
restores the recorded items, not whatever the cancellation event carries, and
the ALLOCATED → RELEASED transition happens at most once no matter how many
cancellation triggers arrive.

State Machine:
    ALLOCATED → RELEASED
    REJECTED                (insufficient stock, nothing was taken)
    VOIDED                  (cancelled before the order was seen)
"""

import json
from datetime import UTC, datetime
from enum import Enum

import structlog
from protean.exceptions import ObjectNotFoundError
from protean.fields import DateTime, String, Text
from protean.utils.globals import current_domain
from shared.compensation import order_decreases, order_restores, parse_items
from shared.events.inventory import StockRejected

from inventory.bus import outbox
from inventory.domain import inventory
from inventory.stock.movements import apply_movement
from inventory.stock.stock import SkuStock

logger = structlog.get_logger(__name__)


class AllocationStatus(Enum):
    ALLOCATED = "ALLOCATED"
    RELEASED = "RELEASED"
    REJECTED = "REJECTED"
    VOIDED = "VOIDED"


@inventory.aggregate
class OrderAllocation:
    order_id: String(identifier=True, max_length=100)
    items: Text()  # JSON list of {sku_id, quantity} actually decreased
    status: String(choices=AllocationStatus, required=True, max_length=20)
    release_reason: String(max_length=100)

    allocated_at: DateTime()
    released_at: DateTime()

    @classmethod
    def allocated(cls, order_id, items):
        return cls(
            order_id=str(order_id),
            items=json.dumps(items),
            status=AllocationStatus.ALLOCATED.value,
            allocated_at=datetime.now(UTC),
        )

    @classmethod
    def rejected(cls, order_id, items):
        return cls(order_id=str(order_id), items=json.dumps(items), status=AllocationStatus.REJECTED.value)

    @classmethod
    def voided(cls, order_id, reason):
        return cls(
            order_id=str(order_id),
            status=AllocationStatus.VOIDED.value,
            release_reason=reason,
            released_at=datetime.now(UTC),
        )

    @property
    def is_releasable(self):
        return AllocationStatus(self.status) == AllocationStatus.ALLOCATED

    def release(self, reason):
        self.status = AllocationStatus.RELEASED.value
        self.release_reason = reason
        self.released_at = datetime.now(UTC)


def _find_allocation(order_id):
    try:
        return current_domain.repository_for(OrderAllocation).get(str(order_id))
    except ObjectNotFoundError:
        return None


def _available(sku_id) -> int:
    try:
        return current_domain.repository_for(SkuStock).get(sku_id).stock_qty
    except ObjectNotFoundError:
        return 0


def allocate_order(order_id, items) -> str:
    """Decrease stock for every item of an order, or for none of them."""
    existing = _find_allocation(order_id)
    if existing is not None:
        return f"allocation already {existing.status}"

    repo = current_domain.repository_for(OrderAllocation)
    movements = order_decreases(order_id, items)

    shortages = [
        {"sku_id": movement.sku_id, "requested": movement.quantity, "available": available}
        for movement in movements
        if (available := _available(movement.sku_id)) < movement.quantity
    ]
    if shortages:
        repo.add(OrderAllocation.rejected(order_id, parse_items(items)))
        outbox.append(
            StockRejected(order_id=str(order_id), rejected_items=json.dumps(shortages), rejected_at=datetime.now(UTC)),
            "OrderAllocation",
            order_id,
        )
        logger.warning("Order rejected for insufficient stock", order_id=str(order_id), shortages=shortages)
        return "stock rejected"

    for movement in movements:
        apply_movement(movement)
    repo.add(OrderAllocation.allocated(order_id, parse_items(items)))
    return f"allocated {len(movements)} sku(s)"


def release_order(order_id, reason) -> str:
    """Restore exactly what the order's allocation took, at most once."""
    repo = current_domain.repository_for(OrderAllocation)
    allocation = _find_allocation(order_id)

    if allocation is None:
        repo.add(OrderAllocation.voided(order_id, reason))
        logger.info("Allocation voided before order was seen", order_id=str(order_id), reason=reason)
        return "allocation voided"

    if not allocation.is_releasable:
        return f"nothing to release: allocation {allocation.status}"

    for movement in order_restores(order_id, allocation.items, reason):
        apply_movement(movement)
    allocation.release(reason)
    repo.add(allocation)
    return "allocation released"
