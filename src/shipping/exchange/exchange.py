"""Exchange aggregate: swapping a delivered item for another SKU.

State Machine:
    EXCHANGE_REQUESTED → EXCHANGE_APPROVED → EXCHANGED
    EXCHANGE_REQUESTED → EXCHANGE_REJECTED

``return_completed_at`` records the original item arriving back; an exchange
can only be completed after that.
"""

from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, Identifier, Integer, String
from shared.events.shipping import ExchangeApproved, ExchangeCompleted, ExchangeReturnCompleted

from shipping.domain import shipping


class ExchangeStatus(Enum):
    EXCHANGE_REQUESTED = "EXCHANGE_REQUESTED"
    EXCHANGE_APPROVED = "EXCHANGE_APPROVED"
    EXCHANGE_REJECTED = "EXCHANGE_REJECTED"
    EXCHANGED = "EXCHANGED"


_VALID_TRANSITIONS = {
    ExchangeStatus.EXCHANGE_REQUESTED: {ExchangeStatus.EXCHANGE_APPROVED, ExchangeStatus.EXCHANGE_REJECTED},
    ExchangeStatus.EXCHANGE_APPROVED: {ExchangeStatus.EXCHANGED},
    ExchangeStatus.EXCHANGE_REJECTED: set(),  # Terminal
    ExchangeStatus.EXCHANGED: set(),  # Terminal
}


@shipping.aggregate
class Exchange:
    order_id: Identifier(required=True)
    original_sku_id: String(required=True, max_length=100)
    new_sku_id: String(required=True, max_length=100)
    quantity: Integer(required=True, min_value=1)
    reason: String(max_length=500)

    status: String(choices=ExchangeStatus, default=ExchangeStatus.EXCHANGE_REQUESTED.value, max_length=30)
    rejection_reason: String(max_length=500)

    requested_at: DateTime()
    approved_at: DateTime()
    return_completed_at: DateTime()
    completed_at: DateTime()

    @classmethod
    def request(cls, order_id, original_sku_id, new_sku_id, quantity, reason=None):
        return cls(
            order_id=str(order_id),
            original_sku_id=original_sku_id,
            new_sku_id=new_sku_id,
            quantity=quantity,
            reason=reason,
            status=ExchangeStatus.EXCHANGE_REQUESTED.value,
            requested_at=datetime.now(UTC),
        )

    @property
    def changes_sku(self):
        return self.new_sku_id != self.original_sku_id

    def _assert_can_transition(self, target_status):
        current = ExchangeStatus(self.status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise ValidationError({"status": [f"Cannot transition from {current.value} to {target_status.value}"]})

    def approve(self):
        self._assert_can_transition(ExchangeStatus.EXCHANGE_APPROVED)
        self.status = ExchangeStatus.EXCHANGE_APPROVED.value
        self.approved_at = datetime.now(UTC)
        return ExchangeApproved(
            exchange_id=str(self.id),
            order_id=str(self.order_id),
            original_sku_id=self.original_sku_id,
            new_sku_id=self.new_sku_id,
            quantity=self.quantity,
            approved_at=self.approved_at,
        )

    def reject(self, reason):
        self._assert_can_transition(ExchangeStatus.EXCHANGE_REJECTED)
        self.status = ExchangeStatus.EXCHANGE_REJECTED.value
        self.rejection_reason = reason

    def complete_return(self):
        """Record the original item arriving back at the warehouse."""
        if ExchangeStatus(self.status) != ExchangeStatus.EXCHANGE_APPROVED:
            raise ValidationError({"status": ["Only approved exchanges can receive the returned item"]})
        if self.return_completed_at is not None:
            raise ValidationError({"return_completed_at": ["Returned item was already received"]})

        self.return_completed_at = datetime.now(UTC)
        return ExchangeReturnCompleted(
            exchange_id=str(self.id),
            order_id=str(self.order_id),
            original_sku_id=self.original_sku_id,
            new_sku_id=self.new_sku_id,
            quantity=self.quantity,
            completed_at=self.return_completed_at,
        )

    def complete(self):
        if self.return_completed_at is None:
            raise ValidationError({"return_completed_at": ["The original item has not been returned yet"]})
        self._assert_can_transition(ExchangeStatus.EXCHANGED)
        self.status = ExchangeStatus.EXCHANGED.value
        self.completed_at = datetime.now(UTC)
        return ExchangeCompleted(exchange_id=str(self.id), order_id=str(self.order_id), completed_at=self.completed_at)
