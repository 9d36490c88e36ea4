"""Structured errors raised by the ordering engines.

Every error carries a stable ``code`` consumed by staff tooling and the
storefront, and an HTTP status used by the API layer.
"""


class OrderingError(Exception):
    """Base class for all ordering errors."""

    status_code = 500
    default_code = "INTERNAL_ERROR"

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code

    def to_dict(self) -> dict:
        return {"error": {"code": self.code, "message": self.message}}


class NotFoundError(OrderingError):
    """Entity is missing: order, item, payment, rider or assignment."""

    status_code = 404
    default_code = "NOT_FOUND"


class InvalidTransitionError(OrderingError):
    """A state-machine rule was violated."""

    status_code = 409
    default_code = "INVALID_TRANSITION"


class RiderInactiveError(OrderingError):
    status_code = 409
    default_code = "RIDER_INACTIVE"


class ConflictError(OrderingError):
    """A concurrent writer won; the caller should re-read before deciding."""

    status_code = 409
    default_code = "CONFLICT"


class UpstreamUnavailableError(OrderingError):
    """The payment gateway could not be reached. Safe to retry with backoff."""

    status_code = 503
    default_code = "UPSTREAM_UNAVAILABLE"


class ValidationFailedError(OrderingError):
    status_code = 400
    default_code = "VALIDATION_ERROR"


class OrderingClosedError(OrderingError):
    status_code = 403
    default_code = "ORDERING_CLOSED"


# ---------------------------------------------------------------------------
# Convenience constructors for the not-found family
# ---------------------------------------------------------------------------
def order_not_found(order_id: str) -> NotFoundError:
    return NotFoundError(f"Order {order_id} not found", code="ORDER_NOT_FOUND")


def item_not_found(item_id: str) -> NotFoundError:
    return NotFoundError(f"Order item {item_id} not found", code="ORDER_ITEM_NOT_FOUND")


def payment_not_found(reference: str) -> NotFoundError:
    return NotFoundError(f"Payment {reference} not found", code="PAYMENT_NOT_FOUND")


def rider_not_found(rider_id: str) -> NotFoundError:
    return NotFoundError(f"Rider {rider_id} not found", code="RIDER_NOT_FOUND")


def assignment_not_found(assignment_id: str, closed_as: str | None = None) -> NotFoundError:
    if closed_as:
        message = f"Assignment {assignment_id} was {closed_as} and is no longer active"
    else:
        message = f"Assignment {assignment_id} not found"
    return NotFoundError(message, code="ASSIGNMENT_NOT_FOUND")
