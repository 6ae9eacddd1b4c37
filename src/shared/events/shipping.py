"""Cross-service event contracts published by the Shipping service.

Shipping owns shipments, exchanges and returns.
"""

from protean.core.event import BaseEvent
from protean.fields import DateTime, Identifier, Integer, String


class ShipmentShipped(BaseEvent):
    __version__ = 1

    shipment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    tracking_number = String(max_length=100)
    shipped_at = DateTime(required=True)


class ShipmentDelivered(BaseEvent):
    __version__ = 1

    shipment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    delivered_at = DateTime(required=True)


class ExchangeApproved(BaseEvent):
    """An exchange was approved; the replacement SKU must leave stock."""

    __version__ = 1

    exchange_id = Identifier(required=True)
    order_id = Identifier(required=True)
    original_sku_id = String(required=True, max_length=100)
    new_sku_id = String(required=True, max_length=100)
    quantity = Integer(required=True, min_value=1)
    approved_at = DateTime(required=True)


class ExchangeReturnCompleted(BaseEvent):
    """The original item of an exchange came back to the warehouse."""

    __version__ = 1

    exchange_id = Identifier(required=True)
    order_id = Identifier(required=True)
    original_sku_id = String(required=True, max_length=100)
    new_sku_id = String(required=True, max_length=100)
    quantity = Integer(required=True, min_value=1)
    completed_at = DateTime(required=True)


class ExchangeCompleted(BaseEvent):
    __version__ = 1

    exchange_id = Identifier(required=True)
    order_id = Identifier(required=True)
    completed_at = DateTime(required=True)


class ReturnCompleted(BaseEvent):
    """A returned order was received; Ordering cancels it to restore stock and refund."""

    __version__ = 1

    return_id = Identifier(required=True)
    order_id = Identifier(required=True)
    reason = String(max_length=500)
    completed_at = DateTime(required=True)
