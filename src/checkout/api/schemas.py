"""Pydantic request/response schemas for the Checkout API.

These are external contracts (anti-corruption layer), kept separate from
the internal Protean commands.
"""

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Carts
# ---------------------------------------------------------------------------
class CreateCartRequest(BaseModel):
    customer_id: str | None = None
    session_id: str | None = None


class AddToCartRequest(BaseModel):
    product_id: str
    unit_price: float
    quantity: int
    stock_limit: int

    model_config = {
        "json_schema_extra": {
            "examples": [{"product_id": "prod-001", "unit_price": 125.0, "quantity": 2, "stock_limit": 10}]
        }
    }


class UpdateCartQuantityRequest(BaseModel):
    quantity: int


class ApplyCouponRequest(BaseModel):
    coupon_code: str = Field(min_length=1, max_length=50)


class CheckoutCartRequest(BaseModel):
    customer_id: str
    currency: str | None = None
    payment_method: str = "airwallex"
    request_id: str | None = None


class CartIdResponse(BaseModel):
    cart_id: str


class QuoteResponse(BaseModel):
    cart_id: str
    coupon_code: str | None = None
    subtotal: float
    discount: float
    shipping: float
    total: float
    currency: str


# ---------------------------------------------------------------------------
# Coupons
# ---------------------------------------------------------------------------
class IssueCouponRequest(BaseModel):
    code: str = Field(min_length=1, max_length=50)
    kind: str  # percentage, fixed
    value: float = Field(gt=0)
    min_purchase: float | None = Field(default=None, ge=0)

    model_config = {
        "json_schema_extra": {"examples": [{"code": "SAVE20", "kind": "fixed", "value": 20, "min_purchase": 200}]}
    }


class CouponCodeResponse(BaseModel):
    code: str


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------
class OrderLineSchema(BaseModel):
    product_id: str
    unit_price: float = Field(ge=0)
    quantity: int = Field(ge=1)


class PlaceOrderRequest(BaseModel):
    customer_id: str
    lines: list[OrderLineSchema] = Field(min_length=1)
    coupon_code: str | None = None
    currency: str | None = None
    payment_method: str = "airwallex"
    request_id: str | None = None


class PlacedOrderResponse(BaseModel):
    order_id: str
    payment_intent_id: str
    client_secret: str
    request_id: str
    created: bool = True


class RetryPaymentRequest(BaseModel):
    actor: str


class RetryPaymentResponse(PlacedOrderResponse):
    attempt_number: int


class CancelOrderRequest(BaseModel):
    reason: str
    actor: str


class ActorRequest(BaseModel):
    actor: str | None = None


class RecordShipmentRequest(BaseModel):
    carrier: str
    tracking_number: str
    actor: str | None = None


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------
class IntentStatusResponse(BaseModel):
    status: str
    order_id: str


class ConfigureGatewayRequest(BaseModel):
    should_succeed: bool
    failure_reason: str = "Card declined"
    failure_mode: str = "request"  # request, auth, timeout


class GatewayConfigResponse(BaseModel):
    gateway: str
    should_succeed: bool
    failure_reason: str
    failure_mode: str


# ---------------------------------------------------------------------------
# Refunds
# ---------------------------------------------------------------------------
class RequestRefundRequest(BaseModel):
    order_id: str
    amount: float
    reason: str = "Customer refund request"
    requested_by: str


class ApproveRefundRequest(BaseModel):
    approved_by: str


class RejectRefundRequest(BaseModel):
    rejected_by: str
    reason: str


class RefundIdResponse(BaseModel):
    refund_id: str
    status: str


class RefundStatusResponse(BaseModel):
    refund_id: str
    status: str
    amount: float
    created_at: str | None = None


class StatusResponse(BaseModel):
    status: str = "ok"
