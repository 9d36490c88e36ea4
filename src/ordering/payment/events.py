"""Payment domain events."""

from protean.fields import DateTime, Float, Identifier, String

from ordering.domain import ordering


@ordering.event(part_of="Payment")
class PaymentInitiated:
    """A payment attempt was opened, against an order or as a prepayment."""

    __version__ = 1

    payment_id = Identifier(required=True)
    order_id = Identifier()  # unset for a prepayment not yet linked to an order
    reference = String(required=True)
    amount = Float(required=True)
    currency = String(required=True)
    payment_method = String()
    initiated_at = DateTime(required=True)


@ordering.event(part_of="Payment")
class PaymentSettled:
    """A payment attempt reached a terminal status.

    ``outcome`` is ``completed``, ``failed`` or ``cancelled`` (a completion
    that arrived after another attempt had already paid the order).
    """

    __version__ = 1

    payment_id = Identifier(required=True)
    order_id = Identifier()
    outcome = String(required=True)
    source = String(required=True)
    transaction_id = String()
    amount = Float()
    failure_reason = String()
    settled_at = DateTime(required=True)


@ordering.event(part_of="Payment")
class PaymentClientTimedOut:
    """The customer's client stopped waiting. The attempt stays open."""

    __version__ = 1

    payment_id = Identifier(required=True)
    order_id = Identifier()
    reason = String()
    timed_out_at = DateTime(required=True)


@ordering.event(part_of="Payment")
class PaymentLinked:
    """A prepayment was attached to the order it pays for."""

    __version__ = 1

    payment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    reference = String(required=True)
    status = String(required=True)
    linked_at = DateTime(required=True)
