"""Payment aggregate (CQRS): one payment attempt against an order.

A prepayment is collected before its order exists. It carries no order
until ``link_to()`` attaches it, and a settlement seen before then only
changes the payment.

Two channels report on an attempt: gateway webhooks (at-least-once, possibly
duplicated or out of order) and status polls made when the customer's client
times out or asks for a check. Both are folded in through ``reconcile()``,
the only path to a terminal status.

State Machine:
    PENDING → COMPLETED | FAILED | CANCELLED
    COMPLETED, FAILED, CANCELLED are terminal: later reports are audited only.

Every report is kept as a GatewayEvent so late and duplicate deliveries stay
visible after the fact.
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ObjectNotFoundError
from protean.fields import (
    Boolean,
    DateTime,
    Float,
    HasMany,
    Identifier,
    String,
    Text,
)

from ordering.domain import ordering
from ordering.errors import ConflictError, payment_not_found
from ordering.gateway.port import COMPLETED, FAILED, PENDING
from ordering.payment.events import PaymentClientTimedOut, PaymentInitiated, PaymentLinked, PaymentSettled

DEFAULT_TIMEOUT_REASON = "Client-side timeout after 5 minutes"


def payment_reference(order_number: int, attempt: int) -> str:
    """Reference sent to the gateway as ``refid``. Unique per attempt."""
    return f"ORD-{order_number}-{attempt}"


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class PaymentStatus(Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ReportSource(Enum):
    INITIATION = "initiation"
    WEBHOOK = "webhook"
    POLL = "poll"
    TIMEOUT = "timeout"


TERMINAL_STATUSES = {PaymentStatus.COMPLETED, PaymentStatus.FAILED, PaymentStatus.CANCELLED}


class ReconcileOutcome(Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    SUPERSEDED = "superseded"
    UNCHANGED = "unchanged"  # still pending
    IGNORED = "ignored"  # already terminal


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@ordering.entity(part_of="Payment")
class GatewayEvent:
    """Audit record of one report received about the payment."""

    source = String(required=True, max_length=20, choices=ReportSource)
    external_status = String(max_length=20)
    transaction_id = String(max_length=255)
    amount = Float()
    applied = Boolean(default=False)
    note = String(max_length=500)
    payload = Text()  # raw provider payload as JSON
    received_at = DateTime(required=True)


# ---------------------------------------------------------------------------
# Aggregate Root (CQRS)
# ---------------------------------------------------------------------------
@ordering.aggregate
class Payment:
    order_id = Identifier()
    reference = String(required=True, max_length=100)
    amount = Float(required=True, min_value=0.0)
    currency = String(max_length=3, default="RWF")
    payment_method = String(max_length=30)
    phone = String(max_length=30)
    customer_name = String(max_length=255)
    customer_email = String(max_length=255)
    status = String(max_length=20, choices=PaymentStatus, default=PaymentStatus.PENDING.value)
    kpay_transaction_id = String(max_length=255)
    client_timeout = Boolean(default=False)
    client_timeout_reason = String(max_length=500)
    client_timeout_at = DateTime()
    failure_reason = String(max_length=500)
    gateway_events = HasMany(GatewayEvent)
    completed_at = DateTime()
    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        order_id: str | None,
        reference: str,
        amount: float,
        currency: str,
        payment_method: str | None = None,
        phone: str | None = None,
        customer_name: str | None = None,
        customer_email: str | None = None,
    ):
        now = datetime.now(UTC)
        payment = cls(
            order_id=order_id,
            reference=reference,
            amount=amount,
            currency=currency,
            payment_method=payment_method,
            phone=phone,
            customer_name=customer_name,
            customer_email=customer_email,
            status=PaymentStatus.PENDING.value,
            created_at=now,
            updated_at=now,
        )
        payment.raise_(
            PaymentInitiated(
                payment_id=str(payment.id),
                order_id=order_id,
                reference=reference,
                amount=amount,
                currency=currency,
                payment_method=payment_method,
                initiated_at=now,
            )
        )
        return payment

    @property
    def is_terminal(self) -> bool:
        return PaymentStatus(self.status) in TERMINAL_STATUSES

    @property
    def is_pending(self) -> bool:
        return PaymentStatus(self.status) == PaymentStatus.PENDING

    @property
    def is_completed(self) -> bool:
        return PaymentStatus(self.status) == PaymentStatus.COMPLETED

    @property
    def order_ref(self) -> str | None:
        return str(self.order_id) if self.order_id else None

    # -------------------------------------------------------------------
    # Prepayment
    # -------------------------------------------------------------------
    def link_to(self, order_id: str) -> bool:
        """Attach the payment to its order. Returns False if it was already attached to it."""
        if self.order_id:
            if str(self.order_id) != str(order_id):
                raise ConflictError(
                    "Payment already linked to a different order",
                    code="PAYMENT_ALREADY_LINKED",
                )
            return False

        now = datetime.now(UTC)
        self.order_id = order_id
        self.updated_at = now
        self.raise_(
            PaymentLinked(
                payment_id=str(self.id),
                order_id=str(order_id),
                reference=self.reference,
                status=self.status,
                linked_at=now,
            )
        )
        return True

    # -------------------------------------------------------------------
    # Audit trail
    # -------------------------------------------------------------------
    def _record(
        self,
        source: str,
        now: datetime,
        external_status: str | None = None,
        transaction_id: str | None = None,
        amount: float | None = None,
        applied: bool = False,
        note: str | None = None,
        payload: dict | None = None,
    ) -> None:
        self.add_gateway_events(
            GatewayEvent(
                source=source,
                external_status=external_status,
                transaction_id=transaction_id,
                amount=amount,
                applied=applied,
                note=note,
                payload=json.dumps(payload, default=str) if payload is not None else None,
                received_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Reconciliation
    # -------------------------------------------------------------------
    def reconcile(
        self,
        source: str,
        external_status: str,
        transaction_id: str | None = None,
        amount: float | None = None,
        description: str | None = None,
        payload: dict | None = None,
    ) -> ReconcileOutcome:
        """Fold one gateway report into the attempt.

        Only a pending attempt changes status, and it does so exactly once.
        Reports about a terminal attempt are recorded and otherwise ignored.
        """
        now = datetime.now(UTC)
        self.updated_at = now

        if self.is_terminal:
            self._record(
                source,
                now,
                external_status,
                transaction_id,
                amount,
                applied=False,
                note=f"Ignored, payment already {self.status}",
                payload=payload,
            )
            return ReconcileOutcome.IGNORED

        if transaction_id and not self.kpay_transaction_id:
            self.kpay_transaction_id = transaction_id

        if external_status == PENDING:
            self._record(source, now, external_status, transaction_id, amount, applied=False, payload=payload)
            return ReconcileOutcome.UNCHANGED

        self._record(source, now, external_status, transaction_id, amount, applied=True, payload=payload)
        if external_status == COMPLETED:
            self.status = PaymentStatus.COMPLETED.value
            self.completed_at = now
            self._raise_settled(source, now)
            return ReconcileOutcome.COMPLETED

        if external_status == FAILED:
            self.status = PaymentStatus.FAILED.value
            self.failure_reason = description or "Payment failed"
            self._raise_settled(source, now)
            return ReconcileOutcome.FAILED

        raise ValueError(f"Unknown external payment status: {external_status}")

    def supersede(self, source: str, settled_by: str, transaction_id: str | None = None) -> None:
        """Close a completion that arrived after another attempt already paid the order."""
        now = datetime.now(UTC)
        if transaction_id and not self.kpay_transaction_id:
            self.kpay_transaction_id = transaction_id
        self.status = PaymentStatus.CANCELLED.value
        self.failure_reason = f"Order already settled by payment {settled_by}; refund required"
        self.updated_at = now
        self._record(
            source,
            now,
            COMPLETED,
            transaction_id,
            applied=True,
            note=self.failure_reason,
        )
        self._raise_settled(source, now)

    def _raise_settled(self, source: str, now: datetime) -> None:
        self.raise_(
            PaymentSettled(
                payment_id=str(self.id),
                order_id=self.order_ref,
                outcome=self.status,
                source=source,
                transaction_id=self.kpay_transaction_id,
                amount=self.amount,
                failure_reason=self.failure_reason,
                settled_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Client timeout
    # -------------------------------------------------------------------
    def record_client_timeout(self, reason: str | None = None) -> bool:
        """Flag that the client gave up waiting. Advisory: the status is untouched.

        Returns False when the attempt is no longer pending.
        """
        now = datetime.now(UTC)
        if not self.is_pending:
            self._record(
                ReportSource.TIMEOUT.value,
                now,
                note=f"Ignored, payment already {self.status}",
            )
            return False

        self.client_timeout = True
        self.client_timeout_reason = reason or DEFAULT_TIMEOUT_REASON
        self.client_timeout_at = now
        self.updated_at = now
        self._record(ReportSource.TIMEOUT.value, now, note=self.client_timeout_reason)
        self.raise_(
            PaymentClientTimedOut(
                payment_id=str(self.id),
                order_id=self.order_ref,
                reason=self.client_timeout_reason,
                timed_out_at=now,
            )
        )
        return True

    def summary(self) -> dict:
        """Payment state without the audit trail."""
        return {
            "id": str(self.id),
            "order_id": self.order_ref,
            "reference": self.reference,
            "amount": self.amount,
            "currency": self.currency,
            "payment_method": self.payment_method,
            "status": self.status,
            "kpay_transaction_id": self.kpay_transaction_id,
            "client_timeout": self.client_timeout,
            "client_timeout_reason": self.client_timeout_reason,
            "failure_reason": self.failure_reason,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@ordering.repository(part_of=Payment)
class PaymentRepository:
    def get_payment(self, payment_id: str) -> Payment:
        """Fetch a payment or raise PAYMENT_NOT_FOUND."""
        try:
            return self.get(payment_id)
        except ObjectNotFoundError as exc:
            raise payment_not_found(payment_id) from exc

    def find_by_transaction_id(self, transaction_id: str) -> Payment | None:
        return self._dao.query.filter(kpay_transaction_id=transaction_id).all().first

    def find_by_reference(self, reference: str) -> Payment | None:
        return self._dao.query.filter(reference=reference).all().first

    def for_order(self, order_id: str) -> list[Payment]:
        """All attempts for an order, oldest first."""
        return self._dao.query.filter(order_id=order_id).order_by("created_at").all().items

    def completed_for_order(self, order_id: str) -> Payment | None:
        return self._dao.query.filter(order_id=order_id, status=PaymentStatus.COMPLETED.value).all().first
