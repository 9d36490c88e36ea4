"""Order domain events: immutable facts about order state changes."""

from protean.fields import Boolean, DateTime, Float, Identifier, Integer, String

from ordering.domain import ordering


@ordering.event(part_of="Order")
class OrderPlaced:
    """A customer (or staff on their behalf) submitted a checkout."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = Integer(required=True)
    customer_id = Identifier()
    customer_email = String()
    total = Float(required=True)
    currency = String(required=True)
    payment_method = String(required=True)
    source = String(required=True)
    placed_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderStatusChanged:
    __version__ = 1

    order_id = Identifier(required=True)
    from_status = String(required=True)
    to_status = String(required=True)
    changed_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderPaid:
    """A payment for the order settled as completed, or cash was collected on delivery."""

    __version__ = 1

    order_id = Identifier(required=True)
    payment_id = Identifier()
    amount = Float(required=True)
    paid_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderCancelled:
    __version__ = 1

    order_id = Identifier(required=True)
    reason = String()
    cancelled_by = String()
    was_paid = Boolean(default=False)
    cancelled_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderDelivered:
    """The rider completed delivery of the order."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = Integer(required=True)
    customer_name = String()
    customer_email = String()
    customer_phone = String()
    delivered_at = DateTime(required=True)


@ordering.event(part_of="Order")
class RefundRequested:
    """A refund was requested for the whole order or for one item (``item_id`` set)."""

    __version__ = 1

    order_id = Identifier(required=True)
    item_id = Identifier()
    reason = String()
    admin_initiated = Boolean(default=False)
    requested_at = DateTime(required=True)


@ordering.event(part_of="Order")
class RefundResolved:
    """A refund request was approved, rejected or withdrawn."""

    __version__ = 1

    order_id = Identifier(required=True)
    item_id = Identifier()
    decision = String(required=True)  # approved, rejected, cancelled
    amount = Float(default=0.0)
    reason = String()
    customer_email = String()
    resolved_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderRefunded:
    __version__ = 1

    order_id = Identifier(required=True)
    refund_amount = Float(required=True)
    refunded_at = DateTime(required=True)
