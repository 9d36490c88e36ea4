"""Configurable fake mobile-money gateway for development and testing.

Simulates the provider without network calls. Initiation is accepted and left
pending (the real provider settles via webhook); status checks answer with
whatever status was configured, and the gateway can be switched to behave as
if it were unreachable.
"""

from uuid import uuid4

from ordering.gateway.port import (
    FAILED,
    PENDING,
    GatewayUnavailable,
    InitiationResult,
    PaymentGateway,
    StatusResult,
)


class FakeGateway(PaymentGateway):
    """Configurable fake payment gateway."""

    def __init__(self) -> None:
        self.should_accept: bool = True
        self.reachable: bool = True
        self.status: str = PENDING
        self.failure_reason: str = "Payment declined"
        self.calls: list[dict] = []

    def configure(
        self,
        should_accept: bool = True,
        reachable: bool = True,
        status: str = PENDING,
        failure_reason: str = "Payment declined",
    ) -> None:
        """Configure gateway behavior at runtime."""
        self.should_accept = should_accept
        self.reachable = reachable
        self.status = status
        self.failure_reason = failure_reason

    def initiate_payment(
        self,
        reference: str,
        amount: float,
        currency: str,
        phone: str,
        payment_method: str,
        customer_name: str,
        customer_email: str | None,
    ) -> InitiationResult:
        self.calls.append(
            {
                "method": "initiate_payment",
                "reference": reference,
                "amount": amount,
                "currency": currency,
                "phone": phone,
                "payment_method": payment_method,
            }
        )
        if not self.reachable:
            raise GatewayUnavailable("Fake gateway is configured as unreachable")

        if self.should_accept:
            return InitiationResult(
                accepted=True,
                transaction_id=f"fake_tid_{uuid4().hex[:12]}",
                status=PENDING,
                description="Awaiting customer confirmation",
            )
        return InitiationResult(accepted=False, status=FAILED, description=self.failure_reason)

    def check_status(self, transaction_id: str | None, reference: str | None) -> StatusResult:
        self.calls.append(
            {
                "method": "check_status",
                "transaction_id": transaction_id,
                "reference": reference,
            }
        )
        if not self.reachable:
            raise GatewayUnavailable("Fake gateway is configured as unreachable")

        description = self.failure_reason if self.status == FAILED else None
        return StatusResult(status=self.status, transaction_id=transaction_id, description=description)

    def verify_webhook_signature(self, payload: str, signature: str) -> bool:  # noqa: ARG002
        return signature == "test-signature"
