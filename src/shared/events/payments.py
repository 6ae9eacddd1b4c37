"""Cross-service event contracts published by the Payments service."""

from protean.core.event import BaseEvent
from protean.fields import DateTime, Float, Identifier, String


class PaymentConfirmed(BaseEvent):
    """Payment for an order was captured for the full order amount."""

    __version__ = 1

    payment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    amount = Float(required=True)
    payment_key = String(max_length=200)
    confirmed_at = DateTime(required=True)


class PaymentCancelled(BaseEvent):
    """Payment for an order failed or was rejected.

    ``reason`` is one of AMOUNT_MISMATCH, PAYMENT_FAILED or TIMEOUT. Inventory
    restores stock and Ordering marks the order failed.
    """

    __version__ = 1

    payment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    reason = String(required=True, max_length=100)
    cancelled_at = DateTime(required=True)


class PaymentRefunded(BaseEvent):
    """A confirmed payment was refunded after its order was cancelled."""

    __version__ = 1

    payment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    amount = Float(required=True)
    reason = String(max_length=100)
    refunded_at = DateTime(required=True)
