"""ReturnRequest aggregate: a customer sending a delivered order back.

State Machine:
    RETURN_REQUESTED → RETURN_APPROVED → RETURNED
    RETURN_REQUESTED → RETURN_REJECTED
"""

from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, Identifier, String
from shared.events.shipping import ReturnCompleted

from shipping.domain import shipping


class ReturnStatus(Enum):
    RETURN_REQUESTED = "RETURN_REQUESTED"
    RETURN_APPROVED = "RETURN_APPROVED"
    RETURN_REJECTED = "RETURN_REJECTED"
    RETURNED = "RETURNED"


_VALID_TRANSITIONS = {
    ReturnStatus.RETURN_REQUESTED: {ReturnStatus.RETURN_APPROVED, ReturnStatus.RETURN_REJECTED},
    ReturnStatus.RETURN_APPROVED: {ReturnStatus.RETURNED},
    ReturnStatus.RETURN_REJECTED: set(),  # Terminal
    ReturnStatus.RETURNED: set(),  # Terminal
}


@shipping.aggregate
class ReturnRequest:
    order_id: Identifier(required=True)
    reason: String(max_length=500)
    status: String(choices=ReturnStatus, default=ReturnStatus.RETURN_REQUESTED.value, max_length=30)
    rejection_reason: String(max_length=500)

    requested_at: DateTime()
    approved_at: DateTime()
    completed_at: DateTime()

    @classmethod
    def request(cls, order_id, reason=None):
        return cls(
            order_id=str(order_id),
            reason=reason,
            status=ReturnStatus.RETURN_REQUESTED.value,
            requested_at=datetime.now(UTC),
        )

    def _assert_can_transition(self, target_status):
        current = ReturnStatus(self.status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise ValidationError({"status": [f"Cannot transition from {current.value} to {target_status.value}"]})

    def approve(self):
        self._assert_can_transition(ReturnStatus.RETURN_APPROVED)
        self.status = ReturnStatus.RETURN_APPROVED.value
        self.approved_at = datetime.now(UTC)

    def reject(self, reason):
        self._assert_can_transition(ReturnStatus.RETURN_REJECTED)
        self.status = ReturnStatus.RETURN_REJECTED.value
        self.rejection_reason = reason

    def complete(self):
        self._assert_can_transition(ReturnStatus.RETURNED)
        self.status = ReturnStatus.RETURNED.value
        self.completed_at = datetime.now(UTC)
        return ReturnCompleted(
            return_id=str(self.id),
            order_id=str(self.order_id),
            reason=self.reason,
            completed_at=self.completed_at,
        )
