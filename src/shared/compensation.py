"""Saga compensation rules: which stock movements a business event implies.

These are pure functions. Callers decide where the movements go: Inventory
applies the order-level ones directly in its consumer transaction, Shipping
appends the exchange-level ones to its outbox together with the exchange
state change. A movement that has been emitted is never rolled back, only
compensated by an opposite movement.
"""

import json

from shared.events.inventory import InventoryDecrease, InventoryIncrease


class Reasons:
    ORDER_CREATED = "ORDER_CREATED"
    ORDER_CANCELLED = "ORDER_CANCELLED"
    PAYMENT_CANCELLED = "PAYMENT_CANCELLED"
    EXCHANGE_APPROVED = "EXCHANGE_APPROVED"
    EXCHANGE_RETURNED = "EXCHANGE_RETURNED"


def parse_items(raw) -> list[dict]:
    """Decode a JSON item list, merging repeated SKUs into one line each."""
    items = json.loads(raw) if isinstance(raw, str) else list(raw or [])

    merged = {}
    for item in items:
        sku_id = str(item["sku_id"])
        quantity = int(item["quantity"])
        if quantity <= 0:
            raise ValueError(f"Item quantity for SKU {sku_id} must be positive")
        merged[sku_id] = merged.get(sku_id, 0) + quantity
    return [{"sku_id": sku_id, "quantity": quantity} for sku_id, quantity in merged.items()]


def order_decreases(order_id, items) -> list[InventoryDecrease]:
    """One stock decrease per SKU of a newly created order."""
    return [
        InventoryDecrease(
            movement_id=f"order-{order_id}-decrease-{item['sku_id']}",
            sku_id=item["sku_id"],
            quantity=item["quantity"],
            reason=Reasons.ORDER_CREATED,
            reference_id=str(order_id),
        )
        for item in parse_items(items)
    ]


def order_restores(order_id, allocated_items, reason) -> list[InventoryIncrease]:
    """Reverse exactly the movements recorded for an order's allocation.

    ``allocated_items`` must be what was actually decreased, not what the
    triggering event claims, so the reversal can never be partial or inflated.
    """
    return [
        InventoryIncrease(
            movement_id=f"order-{order_id}-increase-{item['sku_id']}",
            sku_id=item["sku_id"],
            quantity=item["quantity"],
            reason=reason,
            reference_id=str(order_id),
        )
        for item in parse_items(allocated_items)
    ]


def exchange_approved(event) -> list[InventoryDecrease]:
    """Take the replacement SKU out of stock, unless it is the same SKU."""
    if event.new_sku_id == event.original_sku_id:
        return []
    return [
        InventoryDecrease(
            movement_id=f"exchange-{event.exchange_id}-decrease-{event.new_sku_id}",
            sku_id=event.new_sku_id,
            quantity=event.quantity,
            reason=Reasons.EXCHANGE_APPROVED,
            reference_id=str(event.exchange_id),
        )
    ]


def exchange_return_completed(event) -> list[InventoryIncrease]:
    """Put the returned original SKU back in stock, unless it is the same SKU."""
    if event.new_sku_id == event.original_sku_id:
        return []
    return [
        InventoryIncrease(
            movement_id=f"exchange-{event.exchange_id}-increase-{event.original_sku_id}",
            sku_id=event.original_sku_id,
            quantity=event.quantity,
            reason=Reasons.EXCHANGE_RETURNED,
            reference_id=str(event.exchange_id),
        )
    ]
