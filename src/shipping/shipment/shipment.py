"""Shipment aggregate: physical delivery of a paid order.

State Machine:
    READY → SHIPPING → DELIVERED
    READY → CANCELLED
"""

from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, Identifier, String
from shared.events.shipping import ShipmentDelivered, ShipmentShipped

from shipping.domain import shipping


class ShipmentStatus(Enum):
    READY = "READY"
    SHIPPING = "SHIPPING"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


_VALID_TRANSITIONS = {
    ShipmentStatus.READY: {ShipmentStatus.SHIPPING, ShipmentStatus.CANCELLED},
    ShipmentStatus.SHIPPING: {ShipmentStatus.DELIVERED},
    ShipmentStatus.DELIVERED: set(),  # Terminal
    ShipmentStatus.CANCELLED: set(),  # Terminal
}


@shipping.aggregate
class Shipment:
    order_id: Identifier(required=True, unique=True)
    payment_id: Identifier()
    status: String(choices=ShipmentStatus, default=ShipmentStatus.READY.value, max_length=20)
    tracking_number: String(max_length=100)
    cancel_reason: String(max_length=100)

    created_at: DateTime()
    shipped_at: DateTime()
    delivered_at: DateTime()
    cancelled_at: DateTime()

    @classmethod
    def prepare(cls, order_id, payment_id=None):
        return cls(
            order_id=str(order_id),
            payment_id=payment_id,
            status=ShipmentStatus.READY.value,
            created_at=datetime.now(UTC),
        )

    def _assert_can_transition(self, target_status):
        current = ShipmentStatus(self.status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise ValidationError({"status": [f"Cannot transition from {current.value} to {target_status.value}"]})

    def dispatch(self, tracking_number):
        self._assert_can_transition(ShipmentStatus.SHIPPING)
        self.status = ShipmentStatus.SHIPPING.value
        self.tracking_number = tracking_number
        self.shipped_at = datetime.now(UTC)
        return ShipmentShipped(
            shipment_id=str(self.id),
            order_id=str(self.order_id),
            tracking_number=tracking_number,
            shipped_at=self.shipped_at,
        )

    def deliver(self):
        self._assert_can_transition(ShipmentStatus.DELIVERED)
        self.status = ShipmentStatus.DELIVERED.value
        self.delivered_at = datetime.now(UTC)
        return ShipmentDelivered(shipment_id=str(self.id), order_id=str(self.order_id), delivered_at=self.delivered_at)

    def cancel(self, reason):
        self._assert_can_transition(ShipmentStatus.CANCELLED)
        self.status = ShipmentStatus.CANCELLED.value
        self.cancel_reason = reason
        self.cancelled_at = datetime.now(UTC)


def shipment_for_order(repo, order_id):
    return repo._dao.query.filter(order_id=str(order_id)).all().first
