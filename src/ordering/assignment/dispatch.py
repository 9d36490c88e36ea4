"""Rider dispatch: create, respond to and complete assignments.

Each handler writes the assignment rows and the order in one unit of work,
so the order status and the live assignment never disagree.
"""

from enum import Enum

import structlog
from protean import handle
from protean.fields import Float, Identifier, String
from protean.utils.globals import current_domain

from ordering.assignment.assignment import OrderAssignment
from ordering.domain import ordering
from ordering.errors import RiderInactiveError, assignment_not_found
from ordering.order.order import Order
from ordering.rider.rider import Rider

logger = structlog.get_logger(__name__)


class RiderResponse(Enum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"


@ordering.command(part_of="OrderAssignment")
class CreateAssignment:
    order_id = Identifier(required=True)
    rider_id = Identifier(required=True)
    notes = String(max_length=1000)
    fee = Float(default=0.0, min_value=0.0)


@ordering.command(part_of="OrderAssignment")
class RespondToAssignment:
    assignment_id = Identifier(required=True)
    status = String(required=True, choices=RiderResponse)
    rider_id = Identifier()  # set when the rider answers from their own app


@ordering.command(part_of="OrderAssignment")
class CompleteAssignment:
    assignment_id = Identifier(required=True)
    rider_id = Identifier()


def _load_for_rider(assignment_id: str, rider_id: str | None) -> OrderAssignment:
    assignment = current_domain.repository_for(OrderAssignment).get_assignment(assignment_id)
    if rider_id and str(assignment.rider_id) != str(rider_id):
        raise assignment_not_found(assignment_id)
    return assignment


@ordering.command_handler(part_of=OrderAssignment)
class DispatchHandler:
    @handle(CreateAssignment)
    def create_assignment(self, command) -> dict:
        order_repo = current_domain.repository_for(Order)
        assignment_repo = current_domain.repository_for(OrderAssignment)

        order = order_repo.get_order(command.order_id)
        rider = current_domain.repository_for(Rider).get_rider(command.rider_id)
        if not rider.is_active:
            raise RiderInactiveError(f"Rider {rider.id} is inactive and cannot take deliveries")

        order.mark_assigned()

        for live in assignment_repo.live_for_order(str(order.id)):
            live.close_as_reassigned()
            assignment_repo.add(live)
            logger.info(
                "Assignment closed for reassignment",
                assignment_id=str(live.id),
                order_id=str(order.id),
                previous_rider_id=str(live.rider_id),
            )

        assignment = OrderAssignment.create(
            order_id=str(order.id),
            rider_id=str(rider.id),
            fee=command.fee or 0.0,
            delivery_fee=order.tax or 0.0,
            notes=command.notes,
        )
        assignment_repo.add(assignment)
        order_repo.add(order)
        logger.info(
            "Order assigned to rider",
            assignment_id=str(assignment.id),
            order_id=str(order.id),
            rider_id=str(rider.id),
        )
        return assignment.to_dict()

    @handle(RespondToAssignment)
    def respond_to_assignment(self, command) -> dict:
        assignment = _load_for_rider(command.assignment_id, command.rider_id)
        accepted = command.status == RiderResponse.ACCEPTED.value
        assignment.respond(accepted)

        if accepted:
            order_repo = current_domain.repository_for(Order)
            order = order_repo.get_order(str(assignment.order_id))
            order.mark_shipped()
            order_repo.add(order)
        else:
            # The order stays assigned until a dispatcher picks another rider
            logger.info(
                "Rider rejected assignment",
                assignment_id=str(assignment.id),
                order_id=str(assignment.order_id),
                rider_id=str(assignment.rider_id),
            )

        current_domain.repository_for(OrderAssignment).add(assignment)
        return assignment.to_dict()

    @handle(CompleteAssignment)
    def complete_assignment(self, command) -> dict:
        assignment = _load_for_rider(command.assignment_id, command.rider_id)
        earned = assignment.complete()

        order_repo = current_domain.repository_for(Order)
        order = order_repo.get_order(str(assignment.order_id))
        order.mark_delivered()
        order_repo.add(order)

        current_domain.repository_for(OrderAssignment).add(assignment)
        logger.info(
            "Delivery completed",
            assignment_id=str(assignment.id),
            order_id=str(order.id),
            rider_id=str(assignment.rider_id),
            earned_amount=earned,
        )
        return assignment.to_dict()
