"""Event handlers that turn lifecycle events into notifications.

Notifications are fire-and-forget: a delivery failure is logged and dropped,
never raised back into the state transition that produced the event.
"""

import structlog
from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from ordering.assignment.assignment import OrderAssignment
from ordering.assignment.events import AssignmentCreated, AssignmentRejected
from ordering.domain import ordering
from ordering.notifier import get_notifier
from ordering.order.events import OrderCancelled, OrderDelivered, RefundResolved
from ordering.order.order import Order
from ordering.payment.events import PaymentSettled
from ordering.payment.payment import Payment
from ordering.rider.rider import Rider

logger = structlog.get_logger(__name__)

STAFF = "staff"


def send_notification(topic: str, recipient: str | None, **context) -> bool:
    """Deliver a notification, swallowing delivery failures. Returns True when sent."""
    try:
        get_notifier().notify(topic, recipient, context)
    except Exception:
        logger.exception("Notification delivery failed", topic=topic, recipient=recipient)
        return False
    return True


@ordering.event_handler(part_of=Order)
class OrderNotifications:
    @handle(OrderDelivered)
    def on_order_delivered(self, event: OrderDelivered) -> None:
        send_notification(
            "order_delivered",
            event.customer_email or event.customer_phone,
            order_id=str(event.order_id),
            order_number=event.order_number,
            customer_name=event.customer_name,
        )

    @handle(OrderCancelled)
    def on_order_cancelled(self, event: OrderCancelled) -> None:
        if event.was_paid:
            # Money was collected for an order that will not ship
            send_notification("refund_due", STAFF, order_id=str(event.order_id), reason=event.reason)

    @handle(RefundResolved)
    def on_refund_resolved(self, event: RefundResolved) -> None:
        if event.decision == "cancelled":
            return
        send_notification(
            f"refund_{event.decision}",
            event.customer_email,
            order_id=str(event.order_id),
            item_id=str(event.item_id) if event.item_id else None,
            amount=event.amount,
            reason=event.reason,
        )


@ordering.event_handler(part_of=OrderAssignment)
class AssignmentNotifications:
    @handle(AssignmentCreated)
    def on_assignment_created(self, event: AssignmentCreated) -> None:
        try:
            rider = current_domain.repository_for(Rider).get(str(event.rider_id))
        except ObjectNotFoundError:
            logger.warning("Rider missing for new assignment", rider_id=str(event.rider_id))
            return
        send_notification(
            "assignment_offered",
            rider.phone,
            assignment_id=str(event.assignment_id),
            order_id=str(event.order_id),
            notes=event.notes,
        )

    @handle(AssignmentRejected)
    def on_assignment_rejected(self, event: AssignmentRejected) -> None:
        send_notification(
            "assignment_rejected",
            STAFF,
            assignment_id=str(event.assignment_id),
            order_id=str(event.order_id),
            rider_id=str(event.rider_id),
        )


@ordering.event_handler(part_of=Payment)
class PaymentNotifications:
    @handle(PaymentSettled)
    def on_payment_settled(self, event: PaymentSettled) -> None:
        if event.outcome == "cancelled":
            send_notification(
                "duplicate_payment",
                STAFF,
                payment_id=str(event.payment_id),
                order_id=str(event.order_id),
                transaction_id=event.transaction_id,
                amount=event.amount,
            )
        elif event.outcome == "failed" and event.order_id:
            try:
                order = current_domain.repository_for(Order).get(str(event.order_id))
            except ObjectNotFoundError:
                return
            send_notification(
                "payment_failed",
                order.customer_email or order.customer_phone,
                order_id=str(event.order_id),
                reason=event.failure_reason,
            )
