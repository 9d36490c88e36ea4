"""Rider assignment domain events."""

from protean.fields import DateTime, Float, Identifier, String

from ordering.domain import ordering


@ordering.event(part_of="OrderAssignment")
class AssignmentCreated:
    """An order was offered to a rider."""

    __version__ = 1

    assignment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    rider_id = Identifier(required=True)
    fee = Float(default=0.0)
    delivery_fee = Float(default=0.0)
    notes = String()
    assigned_at = DateTime(required=True)


@ordering.event(part_of="OrderAssignment")
class AssignmentReassigned:
    """A live offer was closed because the order went to another rider."""

    __version__ = 1

    assignment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    rider_id = Identifier(required=True)
    reassigned_at = DateTime(required=True)


@ordering.event(part_of="OrderAssignment")
class AssignmentAccepted:
    __version__ = 1

    assignment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    rider_id = Identifier(required=True)
    responded_at = DateTime(required=True)


@ordering.event(part_of="OrderAssignment")
class AssignmentRejected:
    __version__ = 1

    assignment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    rider_id = Identifier(required=True)
    responded_at = DateTime(required=True)


@ordering.event(part_of="OrderAssignment")
class AssignmentCompleted:
    """The rider delivered the order; ``earned_amount`` is the rider's snapshot earning."""

    __version__ = 1

    assignment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    rider_id = Identifier(required=True)
    earned_amount = Float(required=True)
    completed_at = DateTime(required=True)


@ordering.event(part_of="OrderAssignment")
class AssignmentWithdrawn:
    """The order was cancelled or refunded while the offer was still live."""

    __version__ = 1

    assignment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    rider_id = Identifier(required=True)
    reason = String()
    withdrawn_at = DateTime(required=True)
