"""Payment reconciliation: the single writer of terminal payment states.

Webhooks, status polls and initiation responses all end up in
``settle_report()``, which runs inside the command's unit of work. The
payment row and the order it pays for are persisted together: a completed
payment never commits while its order is still waiting for payment.
"""

import json

import structlog
from protean import handle
from protean.fields import Float, Identifier, String, Text
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.errors import ConflictError, payment_not_found
from ordering.gateway.port import COMPLETED, EXTERNAL_STATUSES
from ordering.order.order import Order
from ordering.payment.payment import Payment, ReconcileOutcome, ReportSource

logger = structlog.get_logger(__name__)

AMOUNT_TOLERANCE = 0.01


def settle_report(
    payment: Payment,
    source: str,
    external_status: str,
    transaction_id: str | None = None,
    amount: float | None = None,
    description: str | None = None,
    payload: dict | None = None,
) -> ReconcileOutcome:
    """Apply one gateway report to a payment and, on completion, to its order."""
    if external_status not in EXTERNAL_STATUSES:
        raise ValueError(f"Unknown external payment status: {external_status}")

    payment_repo = current_domain.repository_for(Payment)

    if transaction_id and transaction_id != payment.kpay_transaction_id:
        holder = payment_repo.find_by_transaction_id(transaction_id)
        if holder is not None and str(holder.id) != str(payment.id):
            raise ConflictError(f"Transaction {transaction_id} already belongs to payment {holder.id}")

    if amount is not None and abs(amount - payment.amount) > AMOUNT_TOLERANCE:
        logger.warning(
            "Gateway amount differs from payment amount",
            payment_id=str(payment.id),
            expected=payment.amount,
            reported=amount,
        )

    if external_status == COMPLETED and payment.is_pending and payment.order_ref:
        settled = payment_repo.completed_for_order(payment.order_ref)
        if settled is not None and str(settled.id) != str(payment.id):
            payment.supersede(source, settled_by=str(settled.id), transaction_id=transaction_id)
            payment_repo.add(payment)
            logger.warning(
                "Second completed payment for an already paid order, refund required",
                payment_id=str(payment.id),
                order_id=payment.order_ref,
                settled_payment_id=str(settled.id),
            )
            return ReconcileOutcome.SUPERSEDED

    outcome = payment.reconcile(
        source,
        external_status,
        transaction_id=transaction_id,
        amount=amount,
        description=description,
        payload=payload,
    )

    # An unlinked prepayment settles the order later, when it is linked
    if outcome == ReconcileOutcome.COMPLETED and payment.order_ref:
        order_repo = current_domain.repository_for(Order)
        order = order_repo.get_order(payment.order_ref)
        order.on_payment_settled(str(payment.id), payment.amount)
        order_repo.add(order)

    payment_repo.add(payment)

    if outcome == ReconcileOutcome.IGNORED:
        logger.info(
            "Late or duplicate payment report absorbed",
            payment_id=str(payment.id),
            source=source,
            reported=external_status,
            status=payment.status,
        )
    else:
        logger.info(
            "Payment report applied",
            payment_id=str(payment.id),
            source=source,
            reported=external_status,
            outcome=outcome.value,
        )
    return outcome


@ordering.command(part_of="Payment")
class ReconcilePayment:
    """Apply a status obtained by polling the gateway or from its initiation response."""

    payment_id = Identifier(required=True)
    source = String(required=True, choices=ReportSource)
    external_status = String(required=True, max_length=20)
    transaction_id = String(max_length=255)
    description = String(max_length=500)


@ordering.command(part_of="Payment")
class ProcessPaymentWebhook:
    """Apply a gateway webhook callback."""

    transaction_ref = String(required=True, max_length=255)
    reference = String(max_length=100)
    external_status = String(required=True, max_length=20)
    description = String(max_length=500)
    amount = Float()
    payload = Text()  # raw webhook body as JSON


@ordering.command(part_of="Payment")
class RecordClientTimeout:
    payment_id = Identifier(required=True)
    reason = String(max_length=500)


@ordering.command_handler(part_of=Payment)
class ReconciliationHandler:
    @handle(ReconcilePayment)
    def reconcile(self, command) -> str:
        payment = current_domain.repository_for(Payment).get_payment(command.payment_id)
        settle_report(
            payment,
            command.source,
            command.external_status,
            transaction_id=command.transaction_id,
            description=command.description,
        )
        return payment.status

    @handle(ProcessPaymentWebhook)
    def process_webhook(self, command) -> str:
        repo = current_domain.repository_for(Payment)
        payment = repo.find_by_transaction_id(command.transaction_ref)
        if payment is None and command.reference:
            payment = repo.find_by_reference(command.reference)
        if payment is None:
            raise payment_not_found(command.transaction_ref)

        payload = json.loads(command.payload) if command.payload else None
        settle_report(
            payment,
            ReportSource.WEBHOOK.value,
            command.external_status,
            transaction_id=command.transaction_ref,
            amount=command.amount,
            description=command.description,
            payload=payload,
        )
        return payment.status

    @handle(RecordClientTimeout)
    def record_client_timeout(self, command) -> str:
        repo = current_domain.repository_for(Payment)
        payment = repo.get_payment(command.payment_id)
        if payment.record_client_timeout(command.reason):
            logger.info(
                "Client timed out waiting for payment",
                payment_id=str(payment.id),
                reason=payment.client_timeout_reason,
            )
        repo.add(payment)
        return payment.status
