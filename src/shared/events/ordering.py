"""Cross-service event contracts published by the Ordering service.

Items travel as a JSON list of ``{"sku_id", "quantity", "unit_price"}``
dicts, the same shape the Order aggregate stores.
"""

from protean.core.event import BaseEvent
from protean.fields import DateTime, Float, Identifier, String, Text


class OrderCreated(BaseEvent):
    """A new order was placed and awaits payment.

    Consumed by Inventory (stock decrease) and Payments (pending payment).
    """

    __version__ = 1

    order_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    items = Text(required=True)  # JSON list of item dicts
    total_amount = Float(required=True)
    created_at = DateTime(required=True)


class OrderCancelled(BaseEvent):
    """An order was cancelled by a user, an admin, a timeout or a return.

    Consumed by Inventory (stock restore), Payments (void or refund) and
    Shipping (cancel an undispatched shipment).
    """

    __version__ = 1

    order_id = Identifier(required=True)
    reason = String(required=True, max_length=100)
    cancelled_by = String(required=True, max_length=50)
    items = Text()  # JSON list of item dicts
    cancelled_at = DateTime(required=True)
