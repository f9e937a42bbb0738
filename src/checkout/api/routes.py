"""FastAPI routes for the Checkout domain — carts, coupons, orders,
payments and refunds.
"""

from fastapi import APIRouter, FastAPI, HTTPException, Request, Response
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from checkout.api.schemas import (
    ActorRequest,
    AddToCartRequest,
    ApplyCouponRequest,
    ApproveRefundRequest,
    CancelOrderRequest,
    CartIdResponse,
    CheckoutCartRequest,
    ConfigureGatewayRequest,
    CouponCodeResponse,
    CreateCartRequest,
    GatewayConfigResponse,
    IntentStatusResponse,
    IssueCouponRequest,
    PlacedOrderResponse,
    PlaceOrderRequest,
    QuoteResponse,
    RecordShipmentRequest,
    RefundIdResponse,
    RefundStatusResponse,
    RejectRefundRequest,
    RequestRefundRequest,
    RetryPaymentRequest,
    RetryPaymentResponse,
    StatusResponse,
    UpdateCartQuantityRequest,
)
from checkout.cart.coupons import ApplyCouponToCart, RemoveCouponFromCart
from checkout.cart.items import AddToCart, RemoveFromCart, UpdateCartQuantity
from checkout.cart.management import ClearCart, CreateCart, quote_cart
from checkout.config import get_settings
from checkout.coupon.issuance import DeactivateCoupon, IssueCoupon
from checkout.domain import logger
from checkout.gateway import FakeGateway, get_gateway
from checkout.gateway.port import GatewayError, GatewayTimeoutError
from checkout.order.reconciler import OrderReconciler
from checkout.refund.refund_request import RefundRequest
from checkout.refund.workflow import RefundWorkflow
from checkout.utils.logging import logging_context
from checkout.webhook.verifier import SignatureError, WebhookVerifier


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------
def register_gateway_error_handlers(app: FastAPI) -> None:
    """Map payment processor failures on synchronous flows to 502/504."""

    @app.exception_handler(GatewayTimeoutError)
    async def _gateway_timeout(request: Request, exc: GatewayTimeoutError):
        content = {"error": exc.message, "outcome": "unknown"}
        if exc.request_id:
            content["request_id"] = exc.request_id
        return JSONResponse(status_code=504, content=content)

    @app.exception_handler(GatewayError)
    async def _gateway_error(request: Request, exc: GatewayError):
        return JSONResponse(
            status_code=502,
            content={"error": exc.message, "provider_status": exc.status_code},
        )


def _placed(result: dict, response: Response):
    # A replayed request_id returns the existing order
    if not result.get("created", True):
        response.status_code = 200
    return result


# ---------------------------------------------------------------------------
# Cart Router
# ---------------------------------------------------------------------------
cart_router = APIRouter(prefix="/carts", tags=["carts"])


@cart_router.post("", status_code=201, response_model=CartIdResponse)
async def create_cart(body: CreateCartRequest) -> CartIdResponse:
    command = CreateCart(customer_id=body.customer_id, session_id=body.session_id)
    result = current_domain.process(command, asynchronous=False)
    return CartIdResponse(cart_id=result)


@cart_router.post("/{cart_id}/items", response_model=StatusResponse)
async def add_cart_item(cart_id: str, body: AddToCartRequest) -> StatusResponse:
    command = AddToCart(
        cart_id=cart_id,
        product_id=body.product_id,
        unit_price=body.unit_price,
        quantity=body.quantity,
        stock_limit=body.stock_limit,
    )
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@cart_router.put("/{cart_id}/items/{product_id}", response_model=StatusResponse)
async def update_cart_item(cart_id: str, product_id: str, body: UpdateCartQuantityRequest) -> StatusResponse:
    command = UpdateCartQuantity(cart_id=cart_id, product_id=product_id, quantity=body.quantity)
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@cart_router.delete("/{cart_id}/items/{product_id}", response_model=StatusResponse)
async def remove_cart_item(cart_id: str, product_id: str) -> StatusResponse:
    current_domain.process(RemoveFromCart(cart_id=cart_id, product_id=product_id), asynchronous=False)
    return StatusResponse()


@cart_router.put("/{cart_id}/clear", response_model=StatusResponse)
async def clear_cart(cart_id: str) -> StatusResponse:
    current_domain.process(ClearCart(cart_id=cart_id), asynchronous=False)
    return StatusResponse(status="cleared")


@cart_router.post("/{cart_id}/coupon", response_model=CouponCodeResponse)
async def apply_coupon(cart_id: str, body: ApplyCouponRequest) -> CouponCodeResponse:
    code = current_domain.process(
        ApplyCouponToCart(cart_id=cart_id, coupon_code=body.coupon_code),
        asynchronous=False,
    )
    return CouponCodeResponse(code=code)


@cart_router.delete("/{cart_id}/coupon", response_model=StatusResponse)
async def remove_coupon(cart_id: str) -> StatusResponse:
    current_domain.process(RemoveCouponFromCart(cart_id=cart_id), asynchronous=False)
    return StatusResponse(status="removed")


@cart_router.get("/{cart_id}/quote", response_model=QuoteResponse)
async def get_quote(cart_id: str) -> QuoteResponse:
    cart, price = quote_cart(cart_id)
    return QuoteResponse(
        cart_id=str(cart.id),
        coupon_code=cart.coupon_code,
        currency=get_settings().currency,
        **price.as_dict(),
    )


@cart_router.post("/{cart_id}/checkout", status_code=201, response_model=PlacedOrderResponse)
def checkout_cart(cart_id: str, body: CheckoutCartRequest, response: Response) -> dict:
    result = OrderReconciler().checkout_cart(
        cart_id=cart_id,
        customer_id=body.customer_id,
        currency=body.currency,
        payment_method=body.payment_method,
        request_id=body.request_id,
    )
    return _placed(result, response)


# ---------------------------------------------------------------------------
# Coupon Router
# ---------------------------------------------------------------------------
coupon_router = APIRouter(prefix="/coupons", tags=["coupons"])


@coupon_router.post("", status_code=201, response_model=CouponCodeResponse)
async def issue_coupon(body: IssueCouponRequest) -> CouponCodeResponse:
    command = IssueCoupon(
        code=body.code,
        kind=body.kind,
        value=body.value,
        min_purchase=body.min_purchase,
    )
    code = current_domain.process(command, asynchronous=False)
    return CouponCodeResponse(code=code)


@coupon_router.put("/{code}/deactivate", response_model=StatusResponse)
async def deactivate_coupon(code: str) -> StatusResponse:
    current_domain.process(DeactivateCoupon(code=code), asynchronous=False)
    return StatusResponse(status="deactivated")


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.post("", status_code=201, response_model=PlacedOrderResponse)
def place_order(body: PlaceOrderRequest, response: Response) -> dict:
    result = OrderReconciler().place_order(
        customer_id=body.customer_id,
        lines=[line.model_dump() for line in body.lines],
        coupon_code=body.coupon_code,
        currency=body.currency,
        payment_method=body.payment_method,
        request_id=body.request_id,
    )
    return _placed(result, response)


@order_router.post("/{order_id}/retry", response_model=RetryPaymentResponse)
def retry_payment(order_id: str, body: RetryPaymentRequest) -> dict:
    return OrderReconciler().retry(order_id, actor=body.actor)


@order_router.put("/{order_id}/cancel", response_model=StatusResponse)
def cancel_order(order_id: str, body: CancelOrderRequest) -> StatusResponse:
    OrderReconciler().cancel(order_id, reason=body.reason, actor=body.actor)
    return StatusResponse(status="cancelled")


@order_router.put("/{order_id}/processing", response_model=StatusResponse)
def mark_processing(order_id: str, body: ActorRequest) -> StatusResponse:
    OrderReconciler().mark_processing(order_id, actor=body.actor)
    return StatusResponse(status="processing")


@order_router.put("/{order_id}/ship", response_model=StatusResponse)
def record_shipment(order_id: str, body: RecordShipmentRequest) -> StatusResponse:
    OrderReconciler().record_shipment(
        order_id,
        carrier=body.carrier,
        tracking_number=body.tracking_number,
        actor=body.actor,
    )
    return StatusResponse(status="shipped")


@order_router.put("/{order_id}/deliver", response_model=StatusResponse)
def record_delivery(order_id: str, body: ActorRequest) -> StatusResponse:
    OrderReconciler().record_delivery(order_id, actor=body.actor)
    return StatusResponse(status="delivered")


# ---------------------------------------------------------------------------
# Payment Router
# ---------------------------------------------------------------------------
payment_router = APIRouter(prefix="/payments", tags=["payments"])


def _apply_webhook_event(event):
    with logging_context(webhook_event_id=event.id, event_type=event.type, intent_id=event.intent_id):
        try:
            outcome = OrderReconciler().handle_event(event)
        except ObjectNotFoundError:
            return JSONResponse(status_code=500, content={"error": "Unknown payment intent, retry later"})
        except Exception:
            logger.exception("webhook_processing_failed")
            return JSONResponse(status_code=500, content={"error": "Webhook processing failed"})

    return StatusResponse(status=outcome.value)


@payment_router.post("/webhook", response_model=StatusResponse)
async def process_webhook(request: Request):
    """Authenticate and apply a payment processor webhook.

    401 when the signature (or the body) cannot be trusted, 500 when
    processing failed and the provider should redeliver, 200 otherwise,
    including duplicates and anomalies. Reconciliation runs in the
    threadpool, where the per-order locks serialize concurrent deliveries.
    """
    raw = await request.body()
    signature = request.headers.get("signature") or request.headers.get("x-signature")

    try:
        event = WebhookVerifier().authenticate(raw, signature, get_settings().webhook_secret)
    except SignatureError as exc:
        logger.warning("webhook_rejected", reason=str(exc))
        raise HTTPException(status_code=401, detail="Invalid webhook signature") from exc

    return await run_in_threadpool(_apply_webhook_event, event)


@payment_router.get("/intents/{intent_id}/status", response_model=IntentStatusResponse)
def get_intent_status(intent_id: str) -> IntentStatusResponse:
    """Poll fallback: fetch the provider status and reconcile the order with it."""
    result = OrderReconciler().sync_status(intent_id)
    return IntentStatusResponse(status=result["status"], order_id=result["order_id"])


@payment_router.post("/gateway/configure", response_model=GatewayConfigResponse)
async def configure_gateway(body: ConfigureGatewayRequest) -> GatewayConfigResponse:
    """Configure the FakeGateway behavior (non-production only)."""
    if get_settings().is_production:
        raise HTTPException(status_code=403, detail="Gateway configuration not available in production")

    gateway = get_gateway()
    if not isinstance(gateway, FakeGateway):
        raise HTTPException(status_code=400, detail="Gateway configuration only available for FakeGateway")

    gateway.configure(
        should_succeed=body.should_succeed,
        failure_reason=body.failure_reason,
        failure_mode=body.failure_mode,
    )
    return GatewayConfigResponse(
        gateway=type(gateway).__name__,
        should_succeed=gateway.should_succeed,
        failure_reason=gateway.failure_reason,
        failure_mode=gateway.failure_mode,
    )


# ---------------------------------------------------------------------------
# Refund Router
# ---------------------------------------------------------------------------
refund_router = APIRouter(prefix="/refunds", tags=["refunds"])


@refund_router.post("", status_code=201, response_model=RefundIdResponse)
def request_refund(body: RequestRefundRequest) -> RefundIdResponse:
    refund_id = RefundWorkflow().request(
        order_id=body.order_id,
        amount=body.amount,
        reason=body.reason,
        requested_by=body.requested_by,
    )
    return RefundIdResponse(refund_id=refund_id, status="pending")


@refund_router.put("/{refund_id}/approve", response_model=RefundIdResponse)
def approve_refund(refund_id: str, body: ApproveRefundRequest) -> RefundIdResponse:
    result = RefundWorkflow().approve(refund_id, approved_by=body.approved_by)
    return RefundIdResponse(refund_id=result["refund_id"], status=result["status"])


@refund_router.put("/{refund_id}/reject", response_model=RefundIdResponse)
def reject_refund(refund_id: str, body: RejectRefundRequest) -> RefundIdResponse:
    RefundWorkflow().reject(refund_id, rejected_by=body.rejected_by, reason=body.reason)
    refund = current_domain.repository_for(RefundRequest).get(refund_id)
    return RefundIdResponse(refund_id=str(refund.id), status=refund.status)


@refund_router.get("/{refund_id}/status", response_model=RefundStatusResponse)
def get_refund_status(refund_id: str) -> RefundStatusResponse:
    return RefundStatusResponse(**RefundWorkflow().check_status(refund_id))
