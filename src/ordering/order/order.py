"""Order aggregate: the customer's order and its fulfillment status.

State Machine:
    CREATED → PAID → SHIPPING → DELIVERED → RETURNED
    CREATED → FAILED                (payment cancelled or stock rejected)
    CREATED → CANCELED              (user, admin or payment timeout)
    PAID → CANCELED                 (user or admin, refunded by Payments)

Every transition is idempotent: moving to the current status is a no-op,
which lets event consumers re-apply a transition safely.

Once paid, the order only moves forward along PAID → SHIPPING → DELIVERED →
RETURNED. Shipping events travel on separate topics and may be applied in any
order, so a stage can be skipped and a stage already passed is ignored.
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, Identifier, String, Text
from shared.compensation import parse_items
from shared.events.ordering import OrderCancelled, OrderCreated

from ordering.domain import ordering


class OrderStatus(Enum):
    CREATED = "CREATED"
    PAID = "PAID"
    SHIPPING = "SHIPPING"
    DELIVERED = "DELIVERED"
    RETURNED = "RETURNED"
    FAILED = "FAILED"
    CANCELED = "CANCELED"


class CancellationReason(Enum):
    USER_REQUEST = "USER_REQUEST"
    ADMIN_REQUEST = "ADMIN_REQUEST"
    SYSTEM_TIMEOUT = "SYSTEM_TIMEOUT"
    STOCK_REJECTED = "STOCK_REJECTED"
    RETURN_COMPLETED = "RETURN_COMPLETED"


_VALID_TRANSITIONS = {
    OrderStatus.CREATED: {OrderStatus.PAID, OrderStatus.FAILED, OrderStatus.CANCELED},
    OrderStatus.PAID: {OrderStatus.SHIPPING, OrderStatus.CANCELED},
    OrderStatus.SHIPPING: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: {OrderStatus.RETURNED},
    OrderStatus.RETURNED: set(),  # Terminal
    OrderStatus.FAILED: set(),  # Terminal
    OrderStatus.CANCELED: set(),  # Terminal
}

CANCELLABLE_STATUSES = {OrderStatus.CREATED, OrderStatus.PAID}

_FULFILLMENT_STAGES = [OrderStatus.PAID, OrderStatus.SHIPPING, OrderStatus.DELIVERED, OrderStatus.RETURNED]


@ordering.aggregate
class Order:
    customer_id: Identifier(required=True)
    items: Text(required=True)  # JSON list of {sku_id, quantity, unit_price}
    total_amount: Float(required=True, min_value=0.0)

    status: String(choices=OrderStatus, default=OrderStatus.CREATED.value, max_length=20)
    cancellation_reason: String(max_length=100)
    cancelled_by: String(max_length=50)
    failure_reason: String(max_length=200)

    created_at: DateTime()
    updated_at: DateTime()
    paid_at: DateTime()
    cancelled_at: DateTime()

    @classmethod
    def place(cls, customer_id, items, order_id=None):
        """Create a new order in CREATED status.

        ``items`` is a list (or JSON list) of ``{sku_id, quantity, unit_price}``.
        """
        items_data = json.loads(items) if isinstance(items, str) else list(items or [])
        if not items_data:
            raise ValidationError({"items": ["An order needs at least one item"]})
        try:
            parse_items(items_data)
        except (KeyError, TypeError, ValueError) as exc:
            raise ValidationError({"items": [f"Invalid item: {exc}"]}) from exc

        total = sum(float(item.get("unit_price", 0.0)) * int(item["quantity"]) for item in items_data)
        now = datetime.now(UTC)

        data = dict(
            customer_id=customer_id,
            items=json.dumps(items_data),
            total_amount=round(total, 2),
            status=OrderStatus.CREATED.value,
            created_at=now,
            updated_at=now,
        )
        if order_id is not None:
            data["id"] = str(order_id)
        return cls(**data)

    # -------------------------------------------------------------------
    # State transitions
    # -------------------------------------------------------------------
    def _assert_can_transition(self, target_status):
        current = OrderStatus(self.status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise ValidationError({"status": [f"Cannot transition from {current.value} to {target_status.value}"]})

    def _move_to(self, target_status) -> bool:
        if OrderStatus(self.status) == target_status:
            return False
        self._assert_can_transition(target_status)
        self.status = target_status.value
        self.updated_at = datetime.now(UTC)
        return True

    def _advance_to(self, target_status) -> bool:
        current = OrderStatus(self.status)
        if current not in _FULFILLMENT_STAGES:
            return self._move_to(target_status)
        if _FULFILLMENT_STAGES.index(current) >= _FULFILLMENT_STAGES.index(target_status):
            return False

        self.status = target_status.value
        self.updated_at = datetime.now(UTC)
        return True

    @property
    def is_closed(self):
        return OrderStatus(self.status) in (OrderStatus.FAILED, OrderStatus.CANCELED, OrderStatus.RETURNED)

    def mark_paid(self) -> bool:
        moved = self._advance_to(OrderStatus.PAID)
        if moved:
            self.paid_at = self.updated_at
        return moved

    def mark_failed(self, reason) -> bool:
        moved = self._move_to(OrderStatus.FAILED)
        if moved:
            self.failure_reason = reason
        return moved

    def cancel(self, reason, cancelled_by):
        """Cancel an order that is still CREATED or PAID."""
        current = OrderStatus(self.status)
        if current not in CANCELLABLE_STATUSES:
            raise ValidationError({"status": [f"Order in status {current.value} cannot be cancelled"]})

        self._move_to(OrderStatus.CANCELED)
        self.cancellation_reason = reason
        self.cancelled_by = cancelled_by
        self.cancelled_at = self.updated_at

    def mark_shipping(self) -> bool:
        return self._advance_to(OrderStatus.SHIPPING)

    def mark_delivered(self) -> bool:
        return self._advance_to(OrderStatus.DELIVERED)

    def mark_returned(self) -> bool:
        return self._advance_to(OrderStatus.RETURNED)

    # -------------------------------------------------------------------
    # Published events
    # -------------------------------------------------------------------
    def created_event(self):
        return OrderCreated(
            order_id=str(self.id),
            customer_id=str(self.customer_id),
            items=self.items,
            total_amount=self.total_amount,
            created_at=self.created_at,
        )

    def cancelled_event(self, reason=None, cancelled_by=None):
        return OrderCancelled(
            order_id=str(self.id),
            reason=reason or self.cancellation_reason,
            cancelled_by=cancelled_by or self.cancelled_by or "system",
            items=self.items,
            cancelled_at=self.cancelled_at or datetime.now(UTC),
        )
