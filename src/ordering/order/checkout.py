"""Checkout: turn a submitted cart into an order and, for online payment, a payment attempt."""

import json

import structlog
from protean import handle
from protean.fields import Float, Identifier, String, Text
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.errors import ConflictError, OrderingClosedError, ValidationFailedError
from ordering.order.numbering import allocate_order_number
from ordering.order.order import Order, OrderSource, PaymentMethod
from ordering.payment.initiation import start_collection
from ordering.payment.payment import Payment, payment_reference
from ordering.payment.prepay import attach_payment, find_payment
from ordering.settings.orders_enabled import orders_enabled

logger = structlog.get_logger(__name__)


@ordering.command(part_of="Order")
class PlaceOrder:
    customer_id = Identifier()
    customer_name = String(required=True, max_length=255)
    customer_email = String(max_length=255)
    customer_phone = String(max_length=30)
    delivery_address = String(required=True, max_length=500)
    schedule_notes = String(max_length=1000)
    delivery_time = String(max_length=100)
    items = Text(required=True)  # JSON: list of item dicts
    tax = Float(default=0.0)
    currency = String(max_length=3, default="RWF")
    payment_method = String(required=True, choices=PaymentMethod)
    mobile_money_provider = String(max_length=30, default="mtn_momo")
    source = String(choices=OrderSource, default=OrderSource.WEB.value)
    prepayment_reference = String(max_length=100)  # a completed prepayment pays for this order


@ordering.command_handler(part_of=Order)
class PlaceOrderHandler:
    @handle(PlaceOrder)
    def place_order(self, command) -> dict:
        if not orders_enabled():
            raise OrderingClosedError("Ordering is currently closed. Please try again during opening hours.")

        order_repo = current_domain.repository_for(Order)
        items_data = json.loads(command.items) if isinstance(command.items, str) else command.items

        order = Order.create(
            order_number=allocate_order_number(),
            customer_id=command.customer_id,
            customer_name=command.customer_name,
            customer_email=command.customer_email,
            customer_phone=command.customer_phone,
            delivery_address=command.delivery_address,
            schedule_notes=command.schedule_notes,
            delivery_time=command.delivery_time,
            items_data=items_data,
            tax=command.tax or 0.0,
            currency=command.currency or "RWF",
            payment_method=command.payment_method,
            source=command.source or OrderSource.WEB.value,
        )

        payment_id = None
        prepaid = False
        if order.is_cash_on_delivery:
            if command.prepayment_reference:
                raise ValidationFailedError("Cash-on-delivery orders cannot use a prepayment")
            order.start_processing()
        elif command.prepayment_reference:
            payment_repo = current_domain.repository_for(Payment)
            payment = find_payment(payment_repo, reference=command.prepayment_reference)
            if payment.order_ref:
                raise ConflictError("Payment already linked to a different order", code="PAYMENT_ALREADY_LINKED")
            if not payment.is_completed:
                raise ConflictError("Payment not yet completed", code="PAYMENT_NOT_COMPLETED")
            attach_payment(payment, order)
            payment_repo.add(payment)
            payment_id, prepaid = str(payment.id), True
        else:
            payment = Payment.create(
                order_id=str(order.id),
                reference=payment_reference(order.order_number, 1),
                amount=order.total,
                currency=order.currency,
                payment_method=command.mobile_money_provider,
                phone=command.customer_phone,
            )
            current_domain.repository_for(Payment).add(payment)
            payment_id = str(payment.id)

        order_repo.add(order)
        logger.info(
            "Order placed",
            order_id=str(order.id),
            order_number=order.order_number,
            payment_method=order.payment_method,
            total=order.total,
        )
        return {
            "order_id": str(order.id),
            "order_number": order.order_number,
            "status": order.status,
            "payment_id": payment_id,
            "prepaid": prepaid,
        }


def checkout(command: PlaceOrder) -> dict:
    """Place the order, then start collecting an online payment.

    The gateway call happens after the order commits, so a slow or failing
    provider never leaves a half-written checkout behind.
    """
    result = current_domain.process(command, asynchronous=False)
    result["payment_status"] = None
    if result.pop("prepaid"):
        result["payment_status"] = current_domain.repository_for(Payment).get_payment(result["payment_id"]).status
    elif result["payment_id"]:
        collection = start_collection(result["payment_id"])
        result["payment_status"] = collection["status"]
        result["payment_failure_reason"] = collection["payment"]["failure_reason"]
        result["status"] = current_domain.repository_for(Order).get_order(result["order_id"]).status
    return result
