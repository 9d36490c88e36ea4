"""Payment initiation: starting a gateway collection and retrying with another method."""

import structlog
from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.errors import ConflictError, InvalidTransitionError
from ordering.gateway import get_gateway
from ordering.gateway.port import FAILED, GatewayUnavailable
from ordering.order.order import Order
from ordering.payment.payment import Payment, PaymentStatus, ReportSource, payment_reference
from ordering.payment.reconciliation import ReconcilePayment

logger = structlog.get_logger(__name__)

GATEWAY_DOWN_REASON = "Payment gateway unavailable, please choose another payment method"


@ordering.command(part_of="Payment")
class RetryPayment:
    """Open a new payment attempt for an unpaid order."""

    order_id = Identifier(required=True)
    phone = String(required=True, max_length=30)
    mobile_money_provider = String(max_length=30, default="mtn_momo")


@ordering.command_handler(part_of=Payment)
class RetryPaymentHandler:
    @handle(RetryPayment)
    def retry_payment(self, command) -> str:
        order = current_domain.repository_for(Order).get_order(command.order_id)
        if order.is_cash_on_delivery:
            raise InvalidTransitionError("Cash-on-delivery orders are paid on delivery", code="INVALID_ORDER_STATE")
        if order.is_terminal:
            raise InvalidTransitionError(
                f"Order in {order.status} status cannot take payments",
                code="INVALID_ORDER_STATE",
            )

        repo = current_domain.repository_for(Payment)
        attempts = repo.for_order(str(order.id))
        if order.is_paid or any(p.status == PaymentStatus.COMPLETED.value for p in attempts):
            raise ConflictError("Order already paid", code="ALREADY_PAID")

        latest = attempts[-1] if attempts else None
        # A timed-out attempt stays open for a late webhook, but no longer blocks a new one
        if latest is not None and latest.is_pending and not latest.client_timeout:
            raise ConflictError("Existing payment in progress", code="PAYMENT_IN_PROGRESS")

        payment = Payment.create(
            order_id=str(order.id),
            reference=payment_reference(order.order_number, len(attempts) + 1),
            amount=order.total,
            currency=order.currency,
            payment_method=command.mobile_money_provider,
            phone=command.phone,
        )
        repo.add(payment)
        logger.info("Payment retry opened", order_id=str(order.id), payment_id=str(payment.id))
        return str(payment.id)


def start_collection(payment_id: str) -> dict:
    """Ask the gateway to collect a pending payment and apply its immediate answer.

    An unreachable gateway or a declined request fails the attempt so the
    customer can choose another method. Returns ``{status, payment}``.
    """
    payment = current_domain.repository_for(Payment).get_payment(payment_id)
    phone, customer_name, customer_email = payment.phone, payment.customer_name, payment.customer_email
    if payment.order_ref:
        order = current_domain.repository_for(Order).get_order(payment.order_ref)
        phone = phone or order.customer_phone
        customer_name, customer_email = order.customer_name, order.customer_email

    try:
        result = get_gateway().initiate_payment(
            reference=payment.reference,
            amount=payment.amount,
            currency=payment.currency,
            phone=phone or "",
            payment_method=payment.payment_method or "mtn_momo",
            customer_name=customer_name,
            customer_email=customer_email,
        )
    except GatewayUnavailable as exc:
        logger.error("Payment initiation failed, gateway unreachable", payment_id=payment_id, error=str(exc))
        external_status, transaction_id, description = FAILED, None, GATEWAY_DOWN_REASON
    else:
        external_status = result.status if result.accepted else FAILED
        transaction_id = result.transaction_id
        description = result.description

    current_domain.process(
        ReconcilePayment(
            payment_id=payment_id,
            source=ReportSource.INITIATION.value,
            external_status=external_status,
            transaction_id=transaction_id,
            description=description,
        ),
        asynchronous=False,
    )
    payment = current_domain.repository_for(Payment).get_payment(payment_id)
    return {"status": payment.status, "payment": payment.summary()}
