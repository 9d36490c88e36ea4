"""Prepay flow: collect a mobile-money payment before the order is created.

The customer pays first against a ``PRE-`` reference. ``finalize_payment``
confirms the outcome, asking the gateway when no webhook has arrived yet, and
tells the client whether an order may now be placed. The order is then
created with the prepayment attached (checkout), or an existing order is
attached afterwards through ``LinkPayment``.

Every gateway answer goes through ``settle_report`` like any other report, so
a prepayment follows the same single-transition rules as an order payment.
"""

from uuid import uuid4

import structlog
from protean import handle
from protean.fields import Float, Identifier, String
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.errors import (
    ConflictError,
    InvalidTransitionError,
    UpstreamUnavailableError,
    ValidationFailedError,
    payment_not_found,
)
from ordering.order.order import Order
from ordering.payment.initiation import start_collection
from ordering.payment.payment import Payment, PaymentRepository
from ordering.payment.reconciliation import AMOUNT_TOLERANCE
from ordering.payment.status_check import check_payment_status

logger = structlog.get_logger(__name__)

GATEWAY_UNCHECKED_MESSAGE = "Unable to check with payment gateway, showing last known status"


def prepayment_reference() -> str:
    return f"PRE-{uuid4().hex[:12].upper()}"


def find_payment(repo: PaymentRepository, reference=None, transaction_id=None, payment_id=None) -> Payment:
    """Look a payment up by reference, then gateway transaction id, then id."""
    payment = None
    if reference:
        payment = repo.find_by_reference(reference)
    if payment is None and transaction_id:
        payment = repo.find_by_transaction_id(transaction_id)
    if payment is None and payment_id:
        return repo.get_payment(payment_id)
    if payment is None:
        raise payment_not_found(reference or transaction_id or payment_id or "")
    return payment


def attach_payment(payment: Payment, order: Order) -> None:
    """Link a payment to an order and settle the order if the payment already completed.

    Both aggregates are saved by the caller's unit of work.
    """
    linked = payment.link_to(str(order.id))
    if abs(payment.amount - order.total) > AMOUNT_TOLERANCE:
        logger.warning(
            "Prepayment amount differs from order total",
            payment_id=str(payment.id),
            order_id=str(order.id),
            paid=payment.amount,
            total=order.total,
        )
    if not (linked and payment.is_completed):
        return
    if order.is_paid:
        logger.warning(
            "Prepayment linked to an order that is already paid, refund required",
            payment_id=str(payment.id),
            order_id=str(order.id),
        )
        return
    order.on_payment_settled(str(payment.id), payment.amount)


# ---------------------------------------------------------------------------
# Opening a prepayment
# ---------------------------------------------------------------------------
@ordering.command(part_of="Payment")
class OpenPrepayment:
    amount = Float(required=True, min_value=0.0)
    currency = String(max_length=3, default="RWF")
    phone = String(required=True, max_length=30)
    mobile_money_provider = String(max_length=30, default="mtn_momo")
    customer_name = String(required=True, max_length=255)
    customer_email = String(max_length=255)


# ---------------------------------------------------------------------------
# Linking a payment to an existing order
# ---------------------------------------------------------------------------
@ordering.command(part_of="Payment")
class LinkPayment:
    order_id = Identifier(required=True)
    reference = String(max_length=100)
    payment_id = Identifier()


@ordering.command_handler(part_of=Payment)
class PrepaymentHandler:
    @handle(OpenPrepayment)
    def open_prepayment(self, command) -> str:
        payment = Payment.create(
            order_id=None,
            reference=prepayment_reference(),
            amount=command.amount,
            currency=command.currency or "RWF",
            payment_method=command.mobile_money_provider,
            phone=command.phone,
            customer_name=command.customer_name,
            customer_email=command.customer_email,
        )
        current_domain.repository_for(Payment).add(payment)
        logger.info("Prepayment opened", payment_id=str(payment.id), reference=payment.reference)
        return str(payment.id)

    @handle(LinkPayment)
    def link_payment(self, command) -> dict:
        payment_repo = current_domain.repository_for(Payment)
        order_repo = current_domain.repository_for(Order)

        payment = find_payment(payment_repo, reference=command.reference, payment_id=command.payment_id)
        order = order_repo.get_order(command.order_id)
        if order.is_terminal:
            raise InvalidTransitionError(
                f"Order in {order.status} status cannot take payments",
                code="INVALID_ORDER_STATE",
            )

        attach_payment(payment, order)
        payment_repo.add(payment)
        order_repo.add(order)
        logger.info(
            "Payment linked to order",
            payment_id=str(payment.id),
            order_id=str(order.id),
            status=payment.status,
        )
        return {
            "order_id": str(order.id),
            "payment_id": str(payment.id),
            "status": payment.status,
            "is_paid": order.is_paid,
        }


def open_prepayment(command: OpenPrepayment) -> dict:
    """Store the prepayment, then ask the gateway to collect it. Returns ``{status, payment}``."""
    payment_id = current_domain.process(command, asynchronous=False)
    return start_collection(payment_id)


def finalize_payment(reference: str | None = None, transaction_id: str | None = None) -> dict:
    """Confirm a prepayment before the client places its order.

    A payment the store has not seen complete is polled once. An unreachable
    gateway answers with the last known state so the client keeps polling;
    any other unfinished outcome is a PAYMENT_NOT_COMPLETED conflict.
    """
    if not reference and not transaction_id:
        raise ValidationFailedError("reference or transaction_id is required")

    payment = find_payment(
        current_domain.repository_for(Payment),
        reference=reference,
        transaction_id=transaction_id,
    )
    payment_id = str(payment.id)

    if payment.order_ref:
        return _finalized(payment, "Payment already linked to an order")

    if not payment.is_completed:
        try:
            check_payment_status(payment_id)
        except UpstreamUnavailableError:
            return _finalized(payment, GATEWAY_UNCHECKED_MESSAGE)

        payment = current_domain.repository_for(Payment).get_payment(payment_id)
        if not payment.is_completed:
            logger.info("Prepayment not completed at finalize", payment_id=payment_id, status=payment.status)
            raise ConflictError("Payment not yet completed", code="PAYMENT_NOT_COMPLETED")

    return _finalized(payment, "Payment completed.")


def _finalized(payment: Payment, message: str) -> dict:
    return {
        "payment_id": str(payment.id),
        "status": payment.status,
        "order_id": payment.order_ref,
        "can_create_order": payment.is_completed and not payment.order_ref,
        "message": message,
    }


def link_payment(order_id: str, reference: str | None = None, payment_id: str | None = None) -> dict:
    """Attach a payment to an order, polling the gateway first when it is still pending.

    Linking is not blocked by the poll: an unreachable gateway only means a
    later webhook settles the order instead.
    """
    if not reference and not payment_id:
        raise ValidationFailedError("reference or payment_id is required")

    payment = find_payment(current_domain.repository_for(Payment), reference=reference, payment_id=payment_id)
    if payment.order_ref and payment.order_ref != str(order_id):
        raise ConflictError("Payment already linked to a different order", code="PAYMENT_ALREADY_LINKED")

    if payment.is_pending:
        try:
            check_payment_status(str(payment.id))
        except UpstreamUnavailableError:
            logger.warning("Linking without a fresh gateway status", payment_id=str(payment.id), order_id=order_id)

    return current_domain.process(
        LinkPayment(order_id=order_id, payment_id=str(payment.id)),
        asynchronous=False,
    )
