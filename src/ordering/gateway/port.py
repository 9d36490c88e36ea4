"""Payment gateway port (abstract interface).

The reconciliation engine never talks to the mobile-money provider directly.
Adapters translate provider responses into the results below, with the
provider status already normalised to one of ``completed``, ``pending`` or
``failed``.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

COMPLETED = "completed"
PENDING = "pending"
FAILED = "failed"

EXTERNAL_STATUSES = (COMPLETED, PENDING, FAILED)

# KPay status codes
_STATUS_CODES = {"01": COMPLETED, "02": PENDING, "03": FAILED}

_STATUS_WORDS = {
    "completed": COMPLETED,
    "complete": COMPLETED,
    "success": COMPLETED,
    "successful": COMPLETED,
    "succeeded": COMPLETED,
    "pending": PENDING,
    "processing": PENDING,
    "failed": FAILED,
    "failure": FAILED,
    "declined": FAILED,
}


class GatewayUnavailable(Exception):
    """The provider could not be reached or answered with a server error."""


def normalize_status(raw_status: str | int | None, description: str | None = None) -> str | None:
    """Map a provider status code or word to an external status.

    Returns ``None`` for values that cannot be interpreted, so callers can
    reject the payload instead of guessing.
    """
    if raw_status is None:
        return None

    value = str(raw_status).strip().lower()
    if value.isdigit():
        status = _STATUS_CODES.get(value.zfill(2))
        # KPay reports some in-flight transactions as failures with a "pending" description
        if status == FAILED and description and "pending" in description.lower():
            return PENDING
        return status

    return _STATUS_WORDS.get(value)


@dataclass(frozen=True)
class InitiationResult:
    """Immediate response to a payment initiation request."""

    accepted: bool
    transaction_id: str | None = None
    status: str = PENDING
    description: str | None = None
    redirect_url: str | None = None


@dataclass(frozen=True)
class StatusResult:
    """Result of a status check against the provider."""

    status: str
    transaction_id: str | None = None
    description: str | None = None
    raw: dict | None = None


class PaymentGateway(ABC):
    """Abstract mobile-money gateway interface."""

    @abstractmethod
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
        """Ask the provider to start collecting a payment."""
        ...

    @abstractmethod
    def check_status(self, transaction_id: str | None, reference: str | None) -> StatusResult:
        """Query the provider for the current status of a payment."""
        ...

    @abstractmethod
    def verify_webhook_signature(self, payload: str, signature: str) -> bool:
        """Verify that a webhook payload is authentically from the gateway."""
        ...
