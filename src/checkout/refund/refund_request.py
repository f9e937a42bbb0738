"""RefundRequest aggregate (CQRS) — an operator-reviewed refund.

State Machine:
    PENDING → COMPLETED (provider accepted the refund)
    PENDING → REJECTED (local decision, no provider call)

Completed and rejected requests are immutable. A request that stays pending
after a failed approval can be approved again: the request id doubles as the
provider request id, so the provider never issues the refund twice.
"""

from datetime import UTC, datetime
from enum import Enum

from protean.fields import DateTime, Float, Identifier, String

from checkout.domain import checkout
from checkout.refund.events import RefundCompleted, RefundRejected, RefundRequested
from checkout.shared.exceptions import InvalidAmount, StateConflictError


class RefundStatus(Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    REJECTED = "rejected"


_VALID_TRANSITIONS = {
    RefundStatus.PENDING: {RefundStatus.COMPLETED, RefundStatus.REJECTED},
    RefundStatus.COMPLETED: set(),  # Terminal
    RefundStatus.REJECTED: set(),  # Terminal
}


@checkout.aggregate
class RefundRequest:
    order_id = Identifier(required=True)
    payment_intent_id = String(required=True, max_length=255)
    amount = Float(required=True)
    reason = String(required=True, max_length=500)
    requested_by = String(required=True, max_length=255)
    status = String(choices=RefundStatus, default=RefundStatus.PENDING.value)
    gateway_refund_id = String(max_length=255)
    gateway_status = String(max_length=50)
    decided_by = String(max_length=255)
    rejection_reason = String(max_length=500)
    requested_at = DateTime()
    decided_at = DateTime()
    updated_at = DateTime()

    def _assert_can_transition(self, target_status: RefundStatus) -> None:
        current = RefundStatus(self.status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise StateConflictError(
                {"status": [f"Refund request is {current.value} and can no longer become {target_status.value}"]}
            )

    @classmethod
    def create(cls, order_id, payment_intent_id, amount, reason, requested_by):
        if amount is None or amount <= 0:
            raise InvalidAmount({"amount": ["Refund amount must be greater than 0"]})

        now = datetime.now(UTC)
        refund = cls(
            order_id=order_id,
            payment_intent_id=payment_intent_id,
            amount=amount,
            reason=reason,
            requested_by=requested_by,
            requested_at=now,
            updated_at=now,
        )
        refund.raise_(
            RefundRequested(
                refund_id=str(refund.id),
                order_id=str(order_id),
                payment_intent_id=payment_intent_id,
                amount=amount,
                reason=reason,
                requested_by=requested_by,
                requested_at=now,
            )
        )
        return refund

    def assert_pending(self) -> None:
        """Raise unless a decision can still be taken on this request."""
        self._assert_can_transition(RefundStatus.COMPLETED)

    def complete(self, gateway_refund_id, gateway_status, approved_by):
        self._assert_can_transition(RefundStatus.COMPLETED)
        now = datetime.now(UTC)
        self.status = RefundStatus.COMPLETED.value
        self.gateway_refund_id = gateway_refund_id
        self.gateway_status = gateway_status
        self.decided_by = approved_by
        self.decided_at = now
        self.updated_at = now

        self.raise_(
            RefundCompleted(
                refund_id=str(self.id),
                order_id=str(self.order_id),
                gateway_refund_id=gateway_refund_id,
                gateway_status=gateway_status,
                amount=self.amount,
                approved_by=approved_by,
                completed_at=now,
            )
        )

    def reject(self, rejected_by, reason):
        self._assert_can_transition(RefundStatus.REJECTED)
        now = datetime.now(UTC)
        self.status = RefundStatus.REJECTED.value
        self.decided_by = rejected_by
        self.rejection_reason = reason
        self.decided_at = now
        self.updated_at = now

        self.raise_(
            RefundRejected(
                refund_id=str(self.id),
                order_id=str(self.order_id),
                rejected_by=rejected_by,
                reason=reason,
                rejected_at=now,
            )
        )

    def mirror_gateway_status(self, gateway_status) -> None:
        """Record the provider's latest status for a completed refund."""
        if RefundStatus(self.status) != RefundStatus.COMPLETED:
            raise StateConflictError({"status": ["Only completed refunds have a provider status"]})
        self.gateway_status = gateway_status
        self.updated_at = datetime.now(UTC)
