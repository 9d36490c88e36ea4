"""Order aggregate (CQRS): the checkout transaction and its lifecycle.

State Machine:
    PENDING → PROCESSING → ASSIGNED → SHIPPED → DELIVERED
    ASSIGNED → ASSIGNED, SHIPPED → ASSIGNED (rider reassignment)
    any non-terminal → CANCELLED | REFUNDED
    DELIVERED → REFUNDED (refund workflow only)

Refund sub-flow (per item and per order, independently):
    NONE → REQUESTED → APPROVED | NONE (rejected) | CANCELLED
    CANCELLED → REQUESTED (customer may re-request)

Totals are computed once at checkout. Later changes only touch the status,
payment flag, delivery timestamp and refund fields.
"""

from datetime import UTC, datetime, timedelta
from enum import Enum

from protean.fields import (
    Boolean,
    DateTime,
    Float,
    HasMany,
    Identifier,
    Integer,
    String,
)

from ordering.domain import ordering
from ordering.errors import (
    InvalidTransitionError,
    ValidationFailedError,
    item_not_found,
)
from ordering.order.events import (
    OrderCancelled,
    OrderDelivered,
    OrderPaid,
    OrderPlaced,
    OrderRefunded,
    OrderStatusChanged,
    RefundRequested,
    RefundResolved,
)

REFUND_WINDOW = timedelta(hours=24)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    ASSIGNED = "assigned"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentMethod(Enum):
    CASH_ON_DELIVERY = "cash_on_delivery"
    MOBILE_MONEY = "mobile_money"


class OrderSource(Enum):
    WEB = "web"
    EXTERNAL = "external"


class RefundStatus(Enum):
    NONE = "none"
    REQUESTED = "requested"
    APPROVED = "approved"
    CANCELLED = "cancelled"


_VALID_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.PROCESSING, OrderStatus.CANCELLED, OrderStatus.REFUNDED},
    OrderStatus.PROCESSING: {OrderStatus.ASSIGNED, OrderStatus.CANCELLED, OrderStatus.REFUNDED},
    OrderStatus.ASSIGNED: {
        OrderStatus.ASSIGNED,
        OrderStatus.SHIPPED,
        OrderStatus.CANCELLED,
        OrderStatus.REFUNDED,
    },
    OrderStatus.SHIPPED: {
        OrderStatus.ASSIGNED,
        OrderStatus.DELIVERED,
        OrderStatus.CANCELLED,
        OrderStatus.REFUNDED,
    },
    OrderStatus.DELIVERED: {OrderStatus.REFUNDED},
    OrderStatus.CANCELLED: set(),  # terminal
    OrderStatus.REFUNDED: set(),  # terminal
}

TERMINAL_STATUSES = {OrderStatus.CANCELLED, OrderStatus.REFUNDED}

# Order statuses a rider can be dispatched from
DISPATCHABLE_STATUSES = {OrderStatus.PROCESSING, OrderStatus.ASSIGNED, OrderStatus.SHIPPED}

_REQUESTABLE_REFUND_STATUSES = {RefundStatus.NONE, RefundStatus.CANCELLED}


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@ordering.entity(part_of="Order")
class OrderItem:
    """One purchased line, with product details snapshotted at checkout."""

    product_id = Identifier(required=True)
    product_name = String(required=True, max_length=255)
    product_sku = String(max_length=100)
    price = Float(required=True, min_value=0.0)
    quantity = Integer(required=True, min_value=1)
    total = Float(required=True, min_value=0.0)
    refund_requested = Boolean(default=False)
    refund_status = String(max_length=20, choices=RefundStatus, default=RefundStatus.NONE.value)
    refund_reason = String(max_length=1000)
    refund_requested_at = DateTime()
    refund_rejection_reason = String(max_length=1000)
    refund_amount = Float(default=0.0)


# ---------------------------------------------------------------------------
# Aggregate Root (CQRS)
# ---------------------------------------------------------------------------
@ordering.aggregate
class Order:
    order_number = Integer(required=True, min_value=1)
    customer_id = Identifier()
    customer_name = String(required=True, max_length=255)
    customer_email = String(max_length=255)
    customer_phone = String(max_length=30)
    delivery_address = String(required=True, max_length=500)
    schedule_notes = String(max_length=1000)
    delivery_time = String(max_length=100)
    status = String(max_length=20, choices=OrderStatus, default=OrderStatus.PENDING.value)
    payment_method = String(
        max_length=30,
        choices=PaymentMethod,
        default=PaymentMethod.MOBILE_MONEY.value,
    )
    source = String(max_length=20, choices=OrderSource, default=OrderSource.WEB.value)
    subtotal = Float(default=0.0)
    tax = Float(default=0.0)  # charged as the delivery (transport) fee
    total = Float(default=0.0)
    currency = String(max_length=3, default="RWF")
    is_paid = Boolean(default=False)
    items = HasMany(OrderItem)
    refund_requested = Boolean(default=False)
    refund_status = String(max_length=20, choices=RefundStatus, default=RefundStatus.NONE.value)
    refund_reason = String(max_length=1000)
    refund_requested_at = DateTime()
    refund_rejection_reason = String(max_length=1000)
    refund_amount = Float(default=0.0)
    delivered_at = DateTime()
    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        order_number: int,
        customer_name: str,
        delivery_address: str,
        items_data: list[dict],
        tax: float = 0.0,
        currency: str = "RWF",
        payment_method: str = PaymentMethod.MOBILE_MONEY.value,
        source: str = OrderSource.WEB.value,
        customer_id: str | None = None,
        customer_email: str | None = None,
        customer_phone: str | None = None,
        schedule_notes: str | None = None,
        delivery_time: str | None = None,
    ):
        """Place an order, snapshotting item details and computing totals."""
        if not items_data:
            raise ValidationFailedError("An order needs at least one item")

        now = datetime.now(UTC)
        order = cls(
            order_number=order_number,
            customer_id=customer_id,
            customer_name=customer_name,
            customer_email=customer_email,
            customer_phone=customer_phone,
            delivery_address=delivery_address,
            schedule_notes=schedule_notes,
            delivery_time=delivery_time,
            payment_method=payment_method,
            source=source,
            tax=tax,
            currency=currency,
            status=OrderStatus.PENDING.value,
            created_at=now,
            updated_at=now,
        )

        subtotal = 0.0
        for item_data in items_data:
            line_total = round(item_data["price"] * item_data["quantity"], 2)
            subtotal += line_total
            order.add_items(
                OrderItem(
                    product_id=item_data["product_id"],
                    product_name=item_data["product_name"],
                    product_sku=item_data.get("product_sku"),
                    price=item_data["price"],
                    quantity=item_data["quantity"],
                    total=line_total,
                )
            )
        order.subtotal = round(subtotal, 2)
        order.total = round(subtotal + (tax or 0.0), 2)

        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                order_number=order_number,
                customer_id=customer_id,
                customer_email=customer_email,
                total=order.total,
                currency=currency,
                payment_method=payment_method,
                source=source,
                placed_at=now,
            )
        )
        return order

    @property
    def is_cash_on_delivery(self) -> bool:
        return self.payment_method == PaymentMethod.CASH_ON_DELIVERY.value

    @property
    def is_terminal(self) -> bool:
        return OrderStatus(self.status) in TERMINAL_STATUSES

    # -------------------------------------------------------------------
    # State transition helpers
    # -------------------------------------------------------------------
    def can_transition_to(self, target: OrderStatus) -> bool:
        return target in _VALID_TRANSITIONS.get(OrderStatus(self.status), set())

    def _transition(self, target: OrderStatus, now: datetime | None = None) -> None:
        current = OrderStatus(self.status)
        if not self.can_transition_to(target):
            raise InvalidTransitionError(f"Cannot transition order from {current.value} to {target.value}")

        now = now or datetime.now(UTC)
        self.status = target.value
        self.updated_at = now
        self.raise_(
            OrderStatusChanged(
                order_id=str(self.id),
                from_status=current.value,
                to_status=target.value,
                changed_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Payment
    # -------------------------------------------------------------------
    def start_processing(self) -> None:
        """Release the order to fulfilment: cash-on-delivery checkout or admin action."""
        self._transition(OrderStatus.PROCESSING)

    def on_payment_settled(self, payment_id: str, amount: float) -> None:
        """Record a completed online payment.

        A pending order moves to processing. For any other status only the
        paid flag changes, so a late settlement never reopens a cancelled
        order.
        """
        now = datetime.now(UTC)
        self.is_paid = True
        self.updated_at = now
        self.raise_(
            OrderPaid(
                order_id=str(self.id),
                payment_id=payment_id,
                amount=amount,
                paid_at=now,
            )
        )
        if OrderStatus(self.status) == OrderStatus.PENDING:
            self._transition(OrderStatus.PROCESSING, now)

    # -------------------------------------------------------------------
    # Dispatch and delivery
    # -------------------------------------------------------------------
    def mark_assigned(self) -> None:
        """A live rider assignment now exists for the order."""
        if OrderStatus(self.status) not in DISPATCHABLE_STATUSES:
            raise InvalidTransitionError(
                f"Order in {self.status} status cannot be assigned to a rider",
                code="INVALID_ORDER_STATE",
            )
        self._transition(OrderStatus.ASSIGNED)

    def mark_shipped(self) -> None:
        self._transition(OrderStatus.SHIPPED)

    def mark_delivered(self) -> None:
        now = datetime.now(UTC)
        self._transition(OrderStatus.DELIVERED, now)
        self.delivered_at = now

        if self.is_cash_on_delivery and not self.is_paid:
            self.is_paid = True
            self.raise_(OrderPaid(order_id=str(self.id), amount=self.total, paid_at=now))

        self.raise_(
            OrderDelivered(
                order_id=str(self.id),
                order_number=self.order_number,
                customer_name=self.customer_name,
                customer_email=self.customer_email,
                customer_phone=self.customer_phone,
                delivered_at=now,
            )
        )

    def cancel(self, reason: str | None = None, cancelled_by: str | None = None) -> None:
        """Cancel the order. Cancelling an already-cancelled order is a no-op."""
        if OrderStatus(self.status) == OrderStatus.CANCELLED:
            return

        now = datetime.now(UTC)
        self._transition(OrderStatus.CANCELLED, now)
        self.raise_(
            OrderCancelled(
                order_id=str(self.id),
                reason=reason,
                cancelled_by=cancelled_by,
                was_paid=self.is_paid,
                cancelled_at=now,
            )
        )

    def update_status(
        self,
        target: str,
        schedule_notes: str | None = None,
        delivery_time: str | None = None,
    ) -> None:
        """Apply a staff status change, validated against the transition graph.

        ``assigned`` is reached only through rider dispatch and ``refunded``
        only through the refund workflow.
        """
        try:
            target_status = OrderStatus(target)
        except ValueError as exc:
            raise ValidationFailedError(f"Unknown order status: {target}") from exc

        if target_status == OrderStatus.ASSIGNED:
            raise InvalidTransitionError("Orders are assigned by dispatching a rider")
        if target_status == OrderStatus.REFUNDED:
            raise InvalidTransitionError("Orders are refunded through the refund workflow")

        if schedule_notes is not None:
            self.schedule_notes = schedule_notes
        if delivery_time is not None:
            self.delivery_time = delivery_time

        if target_status == OrderStatus.CANCELLED:
            self.cancel(cancelled_by="staff")
        elif target_status == OrderStatus.DELIVERED:
            self.mark_delivered()
        else:
            self._transition(target_status)

    # -------------------------------------------------------------------
    # Refunds
    # -------------------------------------------------------------------
    def _item(self, item_id: str) -> OrderItem:
        item = next((i for i in (self.items or []) if str(i.id) == str(item_id)), None)
        if item is None:
            raise item_not_found(item_id)
        return item

    def approved_item_refunds(self) -> float:
        return round(
            sum(i.refund_amount or 0.0 for i in (self.items or []) if i.refund_status == RefundStatus.APPROVED.value),
            2,
        )

    def request_item_refund(self, item_id: str, reason: str, admin_initiated: bool = False) -> None:
        if OrderStatus(self.status) != OrderStatus.DELIVERED:
            raise InvalidTransitionError(
                f"Items can only be refunded on delivered orders (order is {self.status})",
                code="INVALID_ORDER_STATE",
            )

        now = datetime.now(UTC)
        delivered_at = self.delivered_at
        if delivered_at and delivered_at.tzinfo is None:
            delivered_at = delivered_at.replace(tzinfo=UTC)
        if not admin_initiated and delivered_at and now - delivered_at > REFUND_WINDOW:
            raise InvalidTransitionError(
                "Refund window of 24 hours after delivery has expired",
                code="REFUND_EXPIRED",
            )

        item = self._item(item_id)
        if RefundStatus(item.refund_status) not in _REQUESTABLE_REFUND_STATUSES:
            raise InvalidTransitionError(
                f"A refund for this item is already {item.refund_status}",
                code="INVALID_REFUND_STATE",
            )

        item.refund_requested = True
        item.refund_status = RefundStatus.REQUESTED.value
        item.refund_reason = reason
        item.refund_requested_at = now
        item.refund_rejection_reason = None
        self.updated_at = now
        self.raise_(
            RefundRequested(
                order_id=str(self.id),
                item_id=str(item.id),
                reason=reason,
                admin_initiated=admin_initiated,
                requested_at=now,
            )
        )

    def approve_item_refund(self, item_id: str) -> float:
        """Approve an item refund for the item's full line total. Returns the amount."""
        if OrderStatus(self.status) != OrderStatus.DELIVERED:
            raise InvalidTransitionError(
                f"Item refunds can only be approved on delivered orders (order is {self.status})",
                code="INVALID_ORDER_STATE",
            )
        item = self._item(item_id)
        self._assert_refund_requested(item.refund_status)

        amount = item.total
        if self.approved_item_refunds() + amount > self.total + 0.005:
            raise ValidationFailedError(
                "Approving this refund would exceed the order total",
                code="REFUND_EXCEEDS_TOTAL",
            )

        now = datetime.now(UTC)
        item.refund_status = RefundStatus.APPROVED.value
        item.refund_amount = amount
        self.updated_at = now
        self._raise_resolution(item_id=str(item.id), decision="approved", amount=amount, now=now)

        if all(i.refund_status == RefundStatus.APPROVED.value for i in self.items):
            self.refund_amount = self.approved_item_refunds()
            self._refund(now)
        return amount

    def reject_item_refund(self, item_id: str, reason: str | None = None) -> None:
        item = self._item(item_id)
        self._assert_refund_requested(item.refund_status)

        now = datetime.now(UTC)
        item.refund_requested = False
        item.refund_status = RefundStatus.NONE.value
        item.refund_rejection_reason = reason
        self.updated_at = now
        self._raise_resolution(item_id=str(item.id), decision="rejected", reason=reason, now=now)

    def cancel_item_refund(self, item_id: str) -> None:
        item = self._item(item_id)
        self._assert_refund_requested(item.refund_status)

        now = datetime.now(UTC)
        item.refund_requested = False
        item.refund_status = RefundStatus.CANCELLED.value
        self.updated_at = now
        self._raise_resolution(item_id=str(item.id), decision="cancelled", now=now)

    def request_refund(self, reason: str) -> None:
        """Request a refund of the whole order."""
        if not self.is_paid:
            raise InvalidTransitionError("Only paid orders can be refunded", code="INVALID_ORDER_STATE")
        if self.is_terminal:
            raise InvalidTransitionError(
                f"Order in {self.status} status cannot be refunded",
                code="INVALID_ORDER_STATE",
            )
        if RefundStatus(self.refund_status) not in _REQUESTABLE_REFUND_STATUSES:
            raise InvalidTransitionError(
                f"A refund for this order is already {self.refund_status}",
                code="INVALID_REFUND_STATE",
            )

        now = datetime.now(UTC)
        self.refund_requested = True
        self.refund_status = RefundStatus.REQUESTED.value
        self.refund_reason = reason
        self.refund_requested_at = now
        self.refund_rejection_reason = None
        self.updated_at = now
        self.raise_(RefundRequested(order_id=str(self.id), reason=reason, requested_at=now))

    def approve_refund(self) -> float:
        """Approve the order refund net of item refunds already approved. Returns the amount."""
        self._assert_refund_requested(self.refund_status)

        now = datetime.now(UTC)
        amount = max(0.0, round(self.total - self.approved_item_refunds(), 2))
        self.refund_status = RefundStatus.APPROVED.value
        self.refund_amount = amount
        self._raise_resolution(decision="approved", amount=amount, now=now)
        self._refund(now)
        return amount

    def reject_refund(self, reason: str | None = None) -> None:
        self._assert_refund_requested(self.refund_status)

        now = datetime.now(UTC)
        self.refund_requested = False
        self.refund_status = RefundStatus.NONE.value
        self.refund_rejection_reason = reason
        self.updated_at = now
        self._raise_resolution(decision="rejected", reason=reason, now=now)

    def cancel_refund(self) -> None:
        self._assert_refund_requested(self.refund_status)

        now = datetime.now(UTC)
        self.refund_requested = False
        self.refund_status = RefundStatus.CANCELLED.value
        self.updated_at = now
        self._raise_resolution(decision="cancelled", now=now)

    def _assert_refund_requested(self, refund_status: str) -> None:
        if RefundStatus(refund_status) != RefundStatus.REQUESTED:
            raise InvalidTransitionError(
                f"No pending refund request (refund is {refund_status})",
                code="INVALID_REFUND_STATE",
            )

    def _raise_resolution(
        self,
        decision: str,
        now: datetime,
        item_id: str | None = None,
        amount: float = 0.0,
        reason: str | None = None,
    ) -> None:
        self.raise_(
            RefundResolved(
                order_id=str(self.id),
                item_id=item_id,
                decision=decision,
                amount=amount,
                reason=reason,
                customer_email=self.customer_email,
                resolved_at=now,
            )
        )

    def _refund(self, now: datetime) -> None:
        self._transition(OrderStatus.REFUNDED, now)
        self.raise_(
            OrderRefunded(
                order_id=str(self.id),
                refund_amount=self.refund_amount or 0.0,
                refunded_at=now,
            )
        )
