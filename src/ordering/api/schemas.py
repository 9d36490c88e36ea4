"""Pydantic request/response schemas for the ordering API.

These are external contracts, separate from the internal Protean commands.
Payloads are validated here before anything reaches a state machine.
"""

from datetime import datetime
from typing import Literal

from pydantic import AliasChoices, BaseModel, Field


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class OrderItemSchema(BaseModel):
    product_id: str
    product_name: str
    product_sku: str | None = None
    price: float = Field(ge=0)
    quantity: int = Field(ge=1)


class AdditionalFields(BaseModel):
    """Order fields staff may edit alongside a status change."""

    schedule_notes: str | None = None
    delivery_time: str | None = None


class ErrorBody(BaseModel):
    code: str
    message: str


class ErrorResponse(BaseModel):
    error: ErrorBody


# ---------------------------------------------------------------------------
# Order Request Schemas
# ---------------------------------------------------------------------------
class PlaceOrderRequest(BaseModel):
    customer_id: str | None = None
    customer_name: str
    customer_email: str | None = None
    customer_phone: str | None = None
    delivery_address: str
    schedule_notes: str | None = None
    delivery_time: str | None = None
    items: list[OrderItemSchema] = Field(min_length=1)
    tax: float = Field(default=0.0, ge=0)
    currency: str = "RWF"
    payment_method: Literal["cash_on_delivery", "mobile_money"]
    mobile_money_provider: Literal["mtn_momo", "airtel_money", "visa_card", "mastercard", "spenn"] = "mtn_momo"
    source: Literal["web", "external"] = "web"
    prepayment_reference: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "customer_name": "Aline Uwase",
                    "customer_email": "aline@example.com",
                    "customer_phone": "250788000111",
                    "delivery_address": "KG 11 Ave, Kigali",
                    "items": [
                        {
                            "product_id": "prod-001",
                            "product_name": "Avocado (1kg)",
                            "product_sku": "AVO-1KG",
                            "price": 1500,
                            "quantity": 2,
                        }
                    ],
                    "tax": 1000,
                    "payment_method": "mobile_money",
                    "mobile_money_provider": "mtn_momo",
                }
            ]
        }
    }


class UpdateOrderStatusRequest(BaseModel):
    status: Literal["pending", "processing", "assigned", "shipped", "delivered", "cancelled", "refunded"]
    additional_fields: AdditionalFields = Field(default_factory=AdditionalFields)


class CancelOrderRequest(BaseModel):
    reason: str | None = None
    cancelled_by: str = "customer"


class RefundRequest(BaseModel):
    reason: str = Field(min_length=1)
    admin_initiated: bool = False


class RefundDecisionRequest(BaseModel):
    approve: bool
    reason: str | None = None


# ---------------------------------------------------------------------------
# Payment Request Schemas
# ---------------------------------------------------------------------------
class PaymentWebhookRequest(BaseModel):
    """Gateway callback. Accepts KPay field names (tid, refid, statusid, statusdesc)."""

    transaction_ref: str = Field(alias="tid", min_length=1)
    reference: str | None = Field(default=None, alias="refid")
    status: str = Field(alias="statusid")
    status_description: str | None = Field(default=None, alias="statusdesc")
    amount: float | None = None
    momtransactionid: str | None = None
    payaccount: str | None = None
    occurred_at: datetime | None = None

    # KPay sends tid, refid and statusid as strings or as bare numbers
    model_config = {"populate_by_name": True, "coerce_numbers_to_str": True}


class ClientTimeoutRequest(BaseModel):
    payment_id: str
    reason: str | None = None


class RetryPaymentRequest(BaseModel):
    order_id: str
    phone: str
    mobile_money_provider: Literal["mtn_momo", "airtel_money", "visa_card", "mastercard", "spenn"] = "mtn_momo"


class OpenPrepaymentRequest(BaseModel):
    amount: float = Field(gt=0)
    currency: str = "RWF"
    phone: str
    customer_name: str
    customer_email: str | None = None
    mobile_money_provider: Literal["mtn_momo", "airtel_money", "visa_card", "mastercard", "spenn"] = "mtn_momo"


class FinalizePaymentRequest(BaseModel):
    reference: str | None = None
    transaction_id: str | None = Field(default=None, alias="transactionId")

    model_config = {"populate_by_name": True}


class LinkPaymentRequest(BaseModel):
    order_id: str
    reference: str | None = None
    payment_id: str | None = None


class ConfigureGatewayRequest(BaseModel):
    should_accept: bool = True
    reachable: bool = True
    status: Literal["pending", "completed", "failed"] = "pending"
    failure_reason: str = "Payment declined"


# ---------------------------------------------------------------------------
# Rider and Assignment Request Schemas
# ---------------------------------------------------------------------------
class RegisterRiderRequest(BaseModel):
    full_name: str
    phone: str
    email: str | None = None
    vehicle: str | None = None
    user_id: str | None = None


class RiderImportRow(BaseModel):
    """One spreadsheet row. Accepts the name under full_name, name or fullName."""

    full_name: str | None = Field(default=None, validation_alias=AliasChoices("full_name", "name", "fullName"))
    phone: str | None = None
    email: str | None = None
    vehicle: str | None = None
    user_id: str | None = Field(default=None, validation_alias=AliasChoices("user_id", "userId"))

    model_config = {"coerce_numbers_to_str": True}


class ImportRidersRequest(BaseModel):
    rows: list[RiderImportRow]


class RiderStatusRequest(BaseModel):
    status: Literal["active", "inactive"]


class CreateAssignmentRequest(BaseModel):
    order_id: str
    rider_id: str
    notes: str | None = None
    fee: float = Field(default=0.0, ge=0)


class RespondToAssignmentRequest(BaseModel):
    status: Literal["accepted", "rejected"]
    rider_id: str | None = None


class CompleteAssignmentRequest(BaseModel):
    rider_id: str | None = None


# ---------------------------------------------------------------------------
# Settings Request Schemas
# ---------------------------------------------------------------------------
class OrdersEnabledRequest(BaseModel):
    enabled: bool | None = None
    source: Literal["admin", "schedule", "auto"] = "admin"


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------
class CheckoutResponse(BaseModel):
    order_id: str
    order_number: int
    status: str
    payment_id: str | None = None
    payment_status: str | None = None
    payment_failure_reason: str | None = None


class PaymentStatusResponse(BaseModel):
    status: str
    payment: dict


class RiderIdResponse(BaseModel):
    rider_id: str


class StatusResponse(BaseModel):
    status: str


class OrdersEnabledResponse(BaseModel):
    enabled: bool
    source: str


class RiderEarnings(BaseModel):
    rider_id: str
    rider_name: str | None = None
    deliveries: int
    earnings: float
    window_days: int


class TopRiderResponse(BaseModel):
    rider: dict | None = None


class FinalizePaymentResponse(BaseModel):
    payment_id: str
    status: str
    order_id: str | None = None
    can_create_order: bool
    message: str


class LinkPaymentResponse(BaseModel):
    order_id: str
    payment_id: str
    status: str
    is_paid: bool


class TransactionCounts(BaseModel):
    all: int
    pending: int
    completed: int
    failed: int
    cancelled: int
    client_timeout: int


class TransactionStats(BaseModel):
    window_days: int
    total_revenue: float
    completed_transactions: int
    failed_transactions: int
    pending_transactions: int
    revenue_change: float
    completed_change: float
    failed_change: float
    pending_change: float


class RiderImportResult(BaseModel):
    row: int
    rider_id: str | None = None
    error: str | None = None


class ImportRidersResponse(BaseModel):
    imported: int
    failed: int
    results: list[RiderImportResult]


class GatewayConfigResponse(BaseModel):
    gateway: str
    should_accept: bool
    reachable: bool
    status: str
