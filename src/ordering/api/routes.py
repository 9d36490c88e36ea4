"""FastAPI routes for the ordering domain: orders, payments, dispatch and settings."""

import json
import os

import structlog
from fastapi import APIRouter, Header, HTTPException, Request
from protean.utils.globals import current_domain

from ordering.api.schemas import (
    CancelOrderRequest,
    CheckoutResponse,
    ClientTimeoutRequest,
    CompleteAssignmentRequest,
    ConfigureGatewayRequest,
    CreateAssignmentRequest,
    FinalizePaymentRequest,
    FinalizePaymentResponse,
    GatewayConfigResponse,
    ImportRidersRequest,
    ImportRidersResponse,
    LinkPaymentRequest,
    LinkPaymentResponse,
    OpenPrepaymentRequest,
    OrdersEnabledRequest,
    OrdersEnabledResponse,
    PaymentStatusResponse,
    PaymentWebhookRequest,
    PlaceOrderRequest,
    RefundDecisionRequest,
    RefundRequest,
    RegisterRiderRequest,
    RespondToAssignmentRequest,
    RetryPaymentRequest,
    RiderEarnings,
    RiderIdResponse,
    RiderStatusRequest,
    StatusResponse,
    TopRiderResponse,
    TransactionCounts,
    TransactionStats,
    UpdateOrderStatusRequest,
)
from ordering.assignment.dispatch import CompleteAssignment, CreateAssignment, RespondToAssignment
from ordering.assignment.earnings import EARNINGS_WINDOW_DAYS, rider_earnings, top_rider
from ordering.errors import ConflictError, NotFoundError, ValidationFailedError
from ordering.gateway import get_gateway
from ordering.gateway.fake_adapter import FakeGateway
from ordering.gateway.port import normalize_status
from ordering.order.checkout import PlaceOrder, checkout
from ordering.order.refunds import (
    CancelItemRefund,
    CancelOrderRefund,
    RequestItemRefund,
    RequestOrderRefund,
    RespondToItemRefund,
    RespondToOrderRefund,
)
from ordering.order.order import Order
from ordering.order.status import CancelOrder, UpdateOrderStatus
from ordering.payment.initiation import RetryPayment, start_collection
from ordering.payment.payment import Payment
from ordering.payment.prepay import OpenPrepayment, finalize_payment, link_payment, open_prepayment
from ordering.payment.reconciliation import ProcessPaymentWebhook
from ordering.payment.stats import STATS_WINDOW_DAYS, transaction_counts, transaction_stats
from ordering.payment.status_check import check_payment_status, report_client_timeout
from ordering.rider.rider import ChangeRiderStatus, RegisterRider, import_riders
from ordering.settings.orders_enabled import (
    ResumeOrdersSchedule,
    SetOrdersEnabled,
    orders_enabled_state,
)

logger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.post("", status_code=201, response_model=CheckoutResponse)
async def place_order(body: PlaceOrderRequest) -> CheckoutResponse:
    """Check out: create the order and start collecting an online payment."""
    command = PlaceOrder(
        customer_id=body.customer_id,
        customer_name=body.customer_name,
        customer_email=body.customer_email,
        customer_phone=body.customer_phone,
        delivery_address=body.delivery_address,
        schedule_notes=body.schedule_notes,
        delivery_time=body.delivery_time,
        items=json.dumps([item.model_dump() for item in body.items]),
        tax=body.tax,
        currency=body.currency,
        payment_method=body.payment_method,
        mobile_money_provider=body.mobile_money_provider,
        source=body.source,
        prepayment_reference=body.prepayment_reference,
    )
    return CheckoutResponse(**checkout(command))


@order_router.get("/{order_id}")
async def get_order(order_id: str) -> dict:
    return current_domain.repository_for(Order).get_order(order_id).to_dict()


@order_router.post("/{order_id}/status")
async def update_order_status(order_id: str, body: UpdateOrderStatusRequest) -> dict:
    """Staff status change, validated against the order transition graph."""
    command = UpdateOrderStatus(
        order_id=order_id,
        status=body.status,
        schedule_notes=body.additional_fields.schedule_notes,
        delivery_time=body.additional_fields.delivery_time,
    )
    return current_domain.process(command, asynchronous=False)


@order_router.post("/{order_id}/cancel")
async def cancel_order(order_id: str, body: CancelOrderRequest) -> dict:
    command = CancelOrder(order_id=order_id, reason=body.reason, cancelled_by=body.cancelled_by)
    return current_domain.process(command, asynchronous=False)


@order_router.post("/{order_id}/refund")
async def request_order_refund(order_id: str, body: RefundRequest) -> dict:
    return current_domain.process(RequestOrderRefund(order_id=order_id, reason=body.reason), asynchronous=False)


@order_router.post("/{order_id}/refund/respond")
async def respond_to_order_refund(order_id: str, body: RefundDecisionRequest) -> dict:
    command = RespondToOrderRefund(order_id=order_id, approve=body.approve, reason=body.reason)
    return current_domain.process(command, asynchronous=False)


@order_router.post("/{order_id}/refund/cancel")
async def cancel_order_refund(order_id: str) -> dict:
    return current_domain.process(CancelOrderRefund(order_id=order_id), asynchronous=False)


@order_router.post("/{order_id}/items/{item_id}/refund")
async def request_item_refund(order_id: str, item_id: str, body: RefundRequest) -> dict:
    command = RequestItemRefund(
        order_id=order_id,
        item_id=item_id,
        reason=body.reason,
        admin_initiated=body.admin_initiated,
    )
    return current_domain.process(command, asynchronous=False)


@order_router.post("/{order_id}/items/{item_id}/refund/respond")
async def respond_to_item_refund(order_id: str, item_id: str, body: RefundDecisionRequest) -> dict:
    command = RespondToItemRefund(order_id=order_id, item_id=item_id, approve=body.approve, reason=body.reason)
    return current_domain.process(command, asynchronous=False)


@order_router.post("/{order_id}/items/{item_id}/refund/cancel")
async def cancel_item_refund(order_id: str, item_id: str) -> dict:
    return current_domain.process(CancelItemRefund(order_id=order_id, item_id=item_id), asynchronous=False)


# ---------------------------------------------------------------------------
# Payment Router
# ---------------------------------------------------------------------------
payment_router = APIRouter(prefix="/payments", tags=["payments"])


@payment_router.post("/webhook", response_model=StatusResponse)
async def payment_webhook(
    request: Request,
    body: PaymentWebhookRequest,
    x_gateway_signature: str = Header(default=""),
) -> StatusResponse:
    """Gateway callback. Acknowledged with 200 whether or not it changed anything."""
    raw = (await request.body()).decode()
    if not get_gateway().verify_webhook_signature(raw, x_gateway_signature):
        raise HTTPException(status_code=401, detail="Invalid webhook signature")

    external_status = normalize_status(body.status, body.status_description)
    if external_status is None:
        raise ValidationFailedError(f"Unrecognised payment status: {body.status}")

    command = ProcessPaymentWebhook(
        transaction_ref=body.transaction_ref,
        reference=body.reference,
        external_status=external_status,
        description=body.status_description,
        amount=body.amount,
        payload=raw,
    )
    try:
        status = current_domain.process(command, asynchronous=False)
    except (NotFoundError, ConflictError) as exc:
        logger.warning(
            "Webhook dropped",
            transaction_ref=body.transaction_ref,
            reference=body.reference,
            code=exc.code,
            reason=exc.message,
        )
        return StatusResponse(status="ignored")
    return StatusResponse(status=status)


@payment_router.post("/timeout", response_model=PaymentStatusResponse)
async def payment_timeout(body: ClientTimeoutRequest) -> PaymentStatusResponse:
    """The client stopped waiting; returns the authoritative payment state."""
    return PaymentStatusResponse(**report_client_timeout(body.payment_id, body.reason))


@payment_router.post("/retry", status_code=201, response_model=PaymentStatusResponse)
async def retry_payment(body: RetryPaymentRequest) -> PaymentStatusResponse:
    """Open a new payment attempt for an unpaid order and start collecting it."""
    command = RetryPayment(
        order_id=body.order_id,
        phone=body.phone,
        mobile_money_provider=body.mobile_money_provider,
    )
    payment_id = current_domain.process(command, asynchronous=False)
    return PaymentStatusResponse(**start_collection(payment_id))


@payment_router.post("/prepay", status_code=201, response_model=PaymentStatusResponse)
async def open_prepayment_route(body: OpenPrepaymentRequest) -> PaymentStatusResponse:
    """Start collecting a payment before the order exists."""
    command = OpenPrepayment(
        amount=body.amount,
        currency=body.currency,
        phone=body.phone,
        mobile_money_provider=body.mobile_money_provider,
        customer_name=body.customer_name,
        customer_email=body.customer_email,
    )
    return PaymentStatusResponse(**open_prepayment(command))


@payment_router.post("/finalize", response_model=FinalizePaymentResponse)
async def finalize_prepayment(body: FinalizePaymentRequest) -> FinalizePaymentResponse:
    """Confirm a prepayment. 409 PAYMENT_NOT_COMPLETED until the gateway reports completion."""
    return FinalizePaymentResponse(**finalize_payment(reference=body.reference, transaction_id=body.transaction_id))


@payment_router.post("/link", response_model=LinkPaymentResponse)
async def link_payment_route(body: LinkPaymentRequest) -> LinkPaymentResponse:
    return LinkPaymentResponse(**link_payment(body.order_id, reference=body.reference, payment_id=body.payment_id))


@payment_router.get("/stats", response_model=TransactionStats)
async def get_transaction_stats(window_days: int = STATS_WINDOW_DAYS) -> TransactionStats:
    return TransactionStats(**transaction_stats(window_days=window_days))


@payment_router.get("/counts", response_model=TransactionCounts)
async def get_transaction_counts() -> TransactionCounts:
    return TransactionCounts(**transaction_counts())


@payment_router.get("/{payment_id}", response_model=PaymentStatusResponse)
async def get_payment(payment_id: str) -> PaymentStatusResponse:
    payment = current_domain.repository_for(Payment).get_payment(payment_id)
    return PaymentStatusResponse(status=payment.status, payment=payment.summary())


@payment_router.post("/{payment_id}/check", response_model=PaymentStatusResponse)
async def check_payment(payment_id: str) -> PaymentStatusResponse:
    """Poll the gateway for a pending payment. 503 when the gateway is unreachable."""
    return PaymentStatusResponse(**check_payment_status(payment_id))


@payment_router.post("/gateway/configure", response_model=GatewayConfigResponse)
async def configure_gateway(body: ConfigureGatewayRequest) -> GatewayConfigResponse:
    """Configure the FakeGateway behavior (non-production only)."""
    if os.environ.get("PROTEAN_ENV") == "production":
        raise HTTPException(status_code=403, detail="Gateway configuration not available in production")

    gateway = get_gateway()
    if not isinstance(gateway, FakeGateway):
        raise HTTPException(status_code=400, detail="Gateway configuration only available for FakeGateway")

    gateway.configure(
        should_accept=body.should_accept,
        reachable=body.reachable,
        status=body.status,
        failure_reason=body.failure_reason,
    )
    return GatewayConfigResponse(
        gateway=type(gateway).__name__,
        should_accept=gateway.should_accept,
        reachable=gateway.reachable,
        status=gateway.status,
    )


# ---------------------------------------------------------------------------
# Assignment Router
# ---------------------------------------------------------------------------
assignment_router = APIRouter(prefix="/assignments", tags=["assignments"])


@assignment_router.post("", status_code=201)
async def create_assignment(body: CreateAssignmentRequest) -> dict:
    """Offer an order to a rider, closing any live offer first."""
    command = CreateAssignment(order_id=body.order_id, rider_id=body.rider_id, notes=body.notes, fee=body.fee)
    return current_domain.process(command, asynchronous=False)


@assignment_router.post("/{assignment_id}/respond")
async def respond_to_assignment(assignment_id: str, body: RespondToAssignmentRequest) -> dict:
    command = RespondToAssignment(assignment_id=assignment_id, status=body.status, rider_id=body.rider_id)
    return current_domain.process(command, asynchronous=False)


@assignment_router.post("/{assignment_id}/complete")
async def complete_assignment(assignment_id: str, body: CompleteAssignmentRequest | None = None) -> dict:
    command = CompleteAssignment(assignment_id=assignment_id, rider_id=body.rider_id if body else None)
    return current_domain.process(command, asynchronous=False)


# ---------------------------------------------------------------------------
# Rider Router
# ---------------------------------------------------------------------------
rider_router = APIRouter(prefix="/riders", tags=["riders"])


@rider_router.post("", status_code=201, response_model=RiderIdResponse)
async def register_rider(body: RegisterRiderRequest) -> RiderIdResponse:
    command = RegisterRider(
        full_name=body.full_name,
        phone=body.phone,
        email=body.email,
        vehicle=body.vehicle,
        user_id=body.user_id,
    )
    return RiderIdResponse(rider_id=current_domain.process(command, asynchronous=False))


@rider_router.post("/import", response_model=ImportRidersResponse)
async def import_riders_route(body: ImportRidersRequest) -> ImportRidersResponse:
    """Bulk registration from a spreadsheet. Row failures are reported, not raised."""
    return ImportRidersResponse(**import_riders([row.model_dump() for row in body.rows]))


@rider_router.put("/{rider_id}/status")
async def change_rider_status(rider_id: str, body: RiderStatusRequest) -> dict:
    return current_domain.process(ChangeRiderStatus(rider_id=rider_id, status=body.status), asynchronous=False)


@rider_router.get("/earnings", response_model=list[RiderEarnings])
async def get_rider_earnings(window_days: int = EARNINGS_WINDOW_DAYS, rider_id: str | None = None) -> list[RiderEarnings]:
    """Earnings per rider over the trailing window, from completed assignments."""
    return [RiderEarnings(**entry) for entry in rider_earnings(window_days=window_days, rider_id=rider_id)]


@rider_router.get("/top", response_model=TopRiderResponse)
async def get_top_rider(window_days: int | None = None) -> TopRiderResponse:
    """Rider with the most delivered orders. Served from a short-lived cache."""
    return TopRiderResponse(rider=top_rider(window_days))


# ---------------------------------------------------------------------------
# Settings Router
# ---------------------------------------------------------------------------
settings_router = APIRouter(prefix="/settings", tags=["settings"])


@settings_router.get("/orders-enabled", response_model=OrdersEnabledResponse)
async def get_orders_enabled() -> OrdersEnabledResponse:
    return OrdersEnabledResponse(**orders_enabled_state())


@settings_router.put("/orders-enabled", response_model=OrdersEnabledResponse)
async def set_orders_enabled(body: OrdersEnabledRequest) -> OrdersEnabledResponse:
    """Staff toggle (``admin``), scheduler write (``schedule``) or hand-back to the schedule (``auto``)."""
    if body.source == "auto":
        result = current_domain.process(ResumeOrdersSchedule(), asynchronous=False)
    else:
        if body.enabled is None:
            raise ValidationFailedError("enabled is required unless source is auto")
        result = current_domain.process(SetOrdersEnabled(enabled=body.enabled, source=body.source), asynchronous=False)
    return OrdersEnabledResponse(**result)
