"""Staff status updates and cancellation: commands and handler."""

import structlog
from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from ordering.assignment.assignment import OrderAssignment
from ordering.domain import ordering
from ordering.order.order import Order, OrderStatus

logger = structlog.get_logger(__name__)


def withdraw_dispatch(order: Order) -> None:
    """Close live rider offers once the order will no longer be delivered."""
    if OrderStatus(order.status) not in (OrderStatus.CANCELLED, OrderStatus.REFUNDED):
        return
    withdrawn = current_domain.repository_for(OrderAssignment).withdraw_live(str(order.id), reason=order.status)
    if withdrawn:
        logger.info("Rider offers withdrawn", order_id=str(order.id), assignment_ids=withdrawn, status=order.status)


@ordering.command(part_of="Order")
class UpdateOrderStatus:
    order_id = Identifier(required=True)
    status = String(required=True, max_length=20)
    schedule_notes = String(max_length=1000)
    delivery_time = String(max_length=100)


@ordering.command(part_of="Order")
class CancelOrder:
    order_id = Identifier(required=True)
    reason = String(max_length=500)
    cancelled_by = String(max_length=50, default="customer")


@ordering.command_handler(part_of=Order)
class OrderStatusHandler:
    @handle(UpdateOrderStatus)
    def update_status(self, command) -> dict:
        repo = current_domain.repository_for(Order)
        order = repo.get_order(command.order_id)
        previous = order.status
        order.update_status(
            command.status,
            schedule_notes=command.schedule_notes,
            delivery_time=command.delivery_time,
        )
        repo.add(order)
        withdraw_dispatch(order)
        logger.info("Order status updated", order_id=str(order.id), previous=previous, status=order.status)
        return order.to_dict()

    @handle(CancelOrder)
    def cancel_order(self, command) -> dict:
        repo = current_domain.repository_for(Order)
        order = repo.get_order(command.order_id)
        order.cancel(reason=command.reason, cancelled_by=command.cancelled_by)
        repo.add(order)
        withdraw_dispatch(order)
        return order.to_dict()
