"""OrderAssignment aggregate (CQRS): one offer of an order to a rider.

State Machine:
    PENDING → ACCEPTED → COMPLETED
    PENDING → REJECTED
    PENDING | ACCEPTED → REASSIGNED (order handed to another rider)
    PENDING | ACCEPTED → WITHDRAWN (order cancelled or refunded)

PENDING and ACCEPTED are "live". An order has at most one live assignment:
dispatch closes the current one as REASSIGNED before offering the order
again, so history is kept as separate rows.

Fees are snapshotted when the offer is made, so later edits to the order do
not change what the rider earns.
"""

from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ObjectNotFoundError
from protean.fields import DateTime, Float, Identifier, String

from ordering.assignment.events import (
    AssignmentAccepted,
    AssignmentCompleted,
    AssignmentCreated,
    AssignmentReassigned,
    AssignmentRejected,
    AssignmentWithdrawn,
)
from ordering.domain import ordering
from ordering.errors import InvalidTransitionError, assignment_not_found


class AssignmentStatus(Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    COMPLETED = "completed"
    REASSIGNED = "reassigned"
    WITHDRAWN = "withdrawn"


LIVE_STATUSES = {AssignmentStatus.PENDING, AssignmentStatus.ACCEPTED}

# Closed by something other than the rider; any later answer is stale
STALE_STATUSES = {AssignmentStatus.REASSIGNED, AssignmentStatus.WITHDRAWN}

_VALID_TRANSITIONS = {
    AssignmentStatus.PENDING: {
        AssignmentStatus.ACCEPTED,
        AssignmentStatus.REJECTED,
        AssignmentStatus.REASSIGNED,
        AssignmentStatus.WITHDRAWN,
    },
    AssignmentStatus.ACCEPTED: {
        AssignmentStatus.COMPLETED,
        AssignmentStatus.REASSIGNED,
        AssignmentStatus.WITHDRAWN,
    },
    AssignmentStatus.REJECTED: set(),
    AssignmentStatus.COMPLETED: set(),
    AssignmentStatus.REASSIGNED: set(),
    AssignmentStatus.WITHDRAWN: set(),
}


@ordering.aggregate
class OrderAssignment:
    order_id = Identifier(required=True)
    rider_id = Identifier(required=True)
    status = String(max_length=20, choices=AssignmentStatus, default=AssignmentStatus.PENDING.value)
    fee = Float(default=0.0)
    delivery_fee = Float(default=0.0)
    earned_amount = Float()
    notes = String(max_length=1000)
    assigned_at = DateTime()
    responded_at = DateTime()
    completed_at = DateTime()
    reassigned_at = DateTime()
    withdrawn_at = DateTime()

    @classmethod
    def create(
        cls,
        order_id: str,
        rider_id: str,
        fee: float = 0.0,
        delivery_fee: float = 0.0,
        notes: str | None = None,
    ):
        now = datetime.now(UTC)
        assignment = cls(
            order_id=order_id,
            rider_id=rider_id,
            status=AssignmentStatus.PENDING.value,
            fee=fee or 0.0,
            delivery_fee=delivery_fee or 0.0,
            notes=notes,
            assigned_at=now,
        )
        assignment.raise_(
            AssignmentCreated(
                assignment_id=str(assignment.id),
                order_id=order_id,
                rider_id=rider_id,
                fee=assignment.fee,
                delivery_fee=assignment.delivery_fee,
                notes=notes,
                assigned_at=now,
            )
        )
        return assignment

    @property
    def is_live(self) -> bool:
        return AssignmentStatus(self.status) in LIVE_STATUSES

    def _assert_can_transition(self, target: AssignmentStatus) -> None:
        current = AssignmentStatus(self.status)
        if target not in _VALID_TRANSITIONS.get(current, set()):
            raise InvalidTransitionError(f"Cannot transition assignment from {current.value} to {target.value}")

    def close_as_reassigned(self) -> None:
        self._assert_can_transition(AssignmentStatus.REASSIGNED)
        now = datetime.now(UTC)
        self.status = AssignmentStatus.REASSIGNED.value
        self.reassigned_at = now
        self.raise_(
            AssignmentReassigned(
                assignment_id=str(self.id),
                order_id=str(self.order_id),
                rider_id=str(self.rider_id),
                reassigned_at=now,
            )
        )

    def withdraw(self, reason: str | None = None) -> None:
        self._assert_can_transition(AssignmentStatus.WITHDRAWN)
        now = datetime.now(UTC)
        self.status = AssignmentStatus.WITHDRAWN.value
        self.withdrawn_at = now
        self.raise_(
            AssignmentWithdrawn(
                assignment_id=str(self.id),
                order_id=str(self.order_id),
                rider_id=str(self.rider_id),
                reason=reason,
                withdrawn_at=now,
            )
        )

    def respond(self, accepted: bool) -> None:
        """Record the rider's answer to a pending offer."""
        if AssignmentStatus(self.status) in STALE_STATUSES:
            raise assignment_not_found(str(self.id), closed_as=self.status)

        target = AssignmentStatus.ACCEPTED if accepted else AssignmentStatus.REJECTED
        self._assert_can_transition(target)

        now = datetime.now(UTC)
        self.status = target.value
        self.responded_at = now
        event_cls = AssignmentAccepted if accepted else AssignmentRejected
        self.raise_(
            event_cls(
                assignment_id=str(self.id),
                order_id=str(self.order_id),
                rider_id=str(self.rider_id),
                responded_at=now,
            )
        )

    def complete(self) -> float:
        """Mark the delivery done and snapshot the rider's earning. Returns the earning."""
        if AssignmentStatus(self.status) in STALE_STATUSES:
            raise assignment_not_found(str(self.id), closed_as=self.status)
        self._assert_can_transition(AssignmentStatus.COMPLETED)

        now = datetime.now(UTC)
        self.status = AssignmentStatus.COMPLETED.value
        self.completed_at = now
        self.earned_amount = max(0.0, round((self.fee or 0.0) + (self.delivery_fee or 0.0), 2))
        self.raise_(
            AssignmentCompleted(
                assignment_id=str(self.id),
                order_id=str(self.order_id),
                rider_id=str(self.rider_id),
                earned_amount=self.earned_amount,
                completed_at=now,
            )
        )
        return self.earned_amount


@ordering.repository(part_of=OrderAssignment)
class OrderAssignmentRepository:
    def get_assignment(self, assignment_id: str) -> OrderAssignment:
        """Fetch an assignment or raise ASSIGNMENT_NOT_FOUND."""
        try:
            return self.get(assignment_id)
        except ObjectNotFoundError as exc:
            raise assignment_not_found(assignment_id) from exc

    def for_order(self, order_id: str) -> list[OrderAssignment]:
        return self._dao.query.filter(order_id=order_id).all().items

    def live_for_order(self, order_id: str) -> list[OrderAssignment]:
        return [a for a in self.for_order(order_id) if a.is_live]

    def completed(self) -> list[OrderAssignment]:
        return self._dao.query.filter(status=AssignmentStatus.COMPLETED.value).all().items

    def withdraw_live(self, order_id: str, reason: str) -> list[str]:
        """Close every live offer for an order that no longer needs delivering."""
        withdrawn = []
        for assignment in self.live_for_order(order_id):
            assignment.withdraw(reason)
            self.add(assignment)
            withdrawn.append(str(assignment.id))
        return withdrawn
