"""Domain tests for OrderAssignment."""

import pytest

from ordering.assignment.assignment import AssignmentStatus, OrderAssignment
from ordering.assignment.events import (
    AssignmentAccepted,
    AssignmentCompleted,
    AssignmentCreated,
    AssignmentReassigned,
    AssignmentRejected,
    AssignmentWithdrawn,
)
from ordering.errors import InvalidTransitionError, NotFoundError


def _assignment(fee=500.0, delivery_fee=1000.0):
    assignment = OrderAssignment.create(order_id="ord-001", rider_id="rider-001", fee=fee, delivery_fee=delivery_fee)
    assignment._events.clear()
    return assignment


class TestAssignmentLifecycle:
    def test_created_pending_and_live(self):
        assignment = OrderAssignment.create(order_id="ord-001", rider_id="rider-001")
        assert assignment.status == AssignmentStatus.PENDING.value
        assert assignment.is_live
        assert isinstance(assignment._events[0], AssignmentCreated)

    def test_accept(self):
        assignment = _assignment()
        assignment.respond(accepted=True)
        assert assignment.status == "accepted"
        assert assignment.responded_at is not None
        assert isinstance(assignment._events[-1], AssignmentAccepted)

    def test_reject_is_final(self):
        assignment = _assignment()
        assignment.respond(accepted=False)
        assert assignment.status == "rejected"
        assert not assignment.is_live
        assert isinstance(assignment._events[-1], AssignmentRejected)
        with pytest.raises(InvalidTransitionError):
            assignment.respond(accepted=True)

    def test_complete_snapshots_earning(self):
        assignment = _assignment()
        assignment.respond(accepted=True)
        earned = assignment.complete()
        assert earned == 1500.0
        assert assignment.earned_amount == 1500.0
        assert assignment.completed_at is not None
        assert isinstance(assignment._events[-1], AssignmentCompleted)

    def test_pending_assignment_cannot_be_completed(self):
        with pytest.raises(InvalidTransitionError):
            _assignment().complete()


class TestReassignment:
    @pytest.mark.parametrize("accepted_first", [False, True])
    def test_live_assignment_closes_as_reassigned(self, accepted_first):
        assignment = _assignment()
        if accepted_first:
            assignment.respond(accepted=True)
        assignment.close_as_reassigned()
        assert assignment.status == "reassigned"
        assert assignment.reassigned_at is not None
        assert isinstance(assignment._events[-1], AssignmentReassigned)

    def test_completed_assignment_cannot_be_reassigned(self):
        assignment = _assignment()
        assignment.respond(accepted=True)
        assignment.complete()
        with pytest.raises(InvalidTransitionError):
            assignment.close_as_reassigned()

    def test_response_on_reassigned_assignment_reports_stale(self):
        assignment = _assignment()
        assignment.close_as_reassigned()
        with pytest.raises(NotFoundError) as exc:
            assignment.respond(accepted=True)
        assert exc.value.code == "ASSIGNMENT_NOT_FOUND"
        assert "reassigned" in exc.value.message


class TestWithdrawal:
    @pytest.mark.parametrize("accepted_first", [False, True])
    def test_live_assignment_can_be_withdrawn(self, accepted_first):
        assignment = _assignment()
        if accepted_first:
            assignment.respond(accepted=True)
        assignment.withdraw("cancelled")
        assert assignment.status == "withdrawn"
        assert assignment.is_live is False
        assert assignment.withdrawn_at is not None
        assert isinstance(assignment._events[-1], AssignmentWithdrawn)
        assert assignment._events[-1].reason == "cancelled"

    def test_completion_on_withdrawn_assignment_reports_stale(self):
        assignment = _assignment()
        assignment.respond(accepted=True)
        assignment.withdraw("refunded")
        with pytest.raises(NotFoundError) as exc:
            assignment.complete()
        assert exc.value.code == "ASSIGNMENT_NOT_FOUND"
        assert "withdrawn" in exc.value.message

    def test_rejected_assignment_cannot_be_withdrawn(self):
        assignment = _assignment()
        assignment.respond(accepted=False)
        with pytest.raises(InvalidTransitionError):
            assignment.withdraw("cancelled")
