"""Pull-side reconciliation: status polls and client timeouts.

The gateway is queried outside any unit of work so no store transaction is
held open across the network call. The answer is then applied through the
ReconcilePayment command, which re-checks the payment state before writing.
"""

import structlog
from protean.utils.globals import current_domain

from ordering.errors import UpstreamUnavailableError
from ordering.gateway import get_gateway
from ordering.gateway.port import GatewayUnavailable
from ordering.payment.payment import Payment, ReportSource
from ordering.payment.reconciliation import ReconcilePayment, RecordClientTimeout

logger = structlog.get_logger(__name__)


def _snapshot(payment_id: str) -> dict:
    payment = current_domain.repository_for(Payment).get_payment(payment_id)
    return {"status": payment.status, "payment": payment.summary()}


def check_payment_status(payment_id: str) -> dict:
    """Return the authoritative ``{status, payment}``, polling the gateway if still pending.

    Raises UpstreamUnavailableError without touching the payment when the
    gateway cannot be reached.
    """
    payment = current_domain.repository_for(Payment).get_payment(payment_id)
    if payment.is_terminal:
        return {"status": payment.status, "payment": payment.summary()}

    try:
        result = get_gateway().check_status(payment.kpay_transaction_id, payment.reference)
    except GatewayUnavailable as exc:
        logger.warning("Payment status check failed, gateway unreachable", payment_id=payment_id, error=str(exc))
        raise UpstreamUnavailableError("Payment gateway is unreachable, please retry shortly") from exc

    current_domain.process(
        ReconcilePayment(
            payment_id=payment_id,
            source=ReportSource.POLL.value,
            external_status=result.status,
            transaction_id=result.transaction_id,
            description=result.description,
        ),
        asynchronous=False,
    )
    return _snapshot(payment_id)


def report_client_timeout(payment_id: str, reason: str | None = None) -> dict:
    """Record that the client stopped waiting, then poll once for a final answer.

    The timeout never settles the payment itself, and an unreachable gateway
    here is tolerated: the client gets the current state and may retry.
    """
    current_domain.process(RecordClientTimeout(payment_id=payment_id, reason=reason), asynchronous=False)
    try:
        return check_payment_status(payment_id)
    except UpstreamUnavailableError:
        return _snapshot(payment_id)
