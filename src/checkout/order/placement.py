"""Order placement — commands and handler.

Placement is atomic: the payment intent is opened before anything is
persisted, so a gateway error leaves neither an order nor an emptied cart
behind. A client retrying with the same ``request_id`` gets the provider's
original intent back; when that intent is already mirrored locally the
existing order is returned instead of a second one being created.
"""

import json
from uuid import uuid4

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from checkout.cart.cart import ShoppingCart
from checkout.cart.coupons import CouponPolicy
from checkout.config import get_settings
from checkout.domain import checkout, logger
from checkout.gateway import GatewayTimeoutError, get_gateway
from checkout.order.intent import PaymentIntentRecord, find_intent
from checkout.order.order import GATEWAY_PAYMENT_METHODS, Order, PaymentMethod
from checkout.pricing.engine import quote


@checkout.command(part_of="Order")
class PlaceOrder:
    customer_id = Identifier(required=True)
    lines = Text(required=True)  # JSON: list of {product_id, unit_price, quantity}
    coupon_code = String(max_length=50)
    currency = String(max_length=3)
    payment_method = String(max_length=50, default=PaymentMethod.AIRWALLEX.value)
    request_id = String(max_length=255)


@checkout.command(part_of="Order")
class CheckoutCart:
    """Place an order from a persisted cart."""

    cart_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    currency = String(max_length=3)
    payment_method = String(max_length=50, default=PaymentMethod.AIRWALLEX.value)
    request_id = String(max_length=255)


def _validated_lines(lines):
    if not lines:
        raise ValidationError({"lines": ["An order needs at least one line"]})

    validated = []
    for line in lines:
        try:
            quantity = int(line["quantity"])
            unit_price = float(line["unit_price"])
            product_id = str(line["product_id"])
        except (KeyError, TypeError, ValueError) as exc:
            raise ValidationError({"lines": [f"Malformed order line: {line!r}"]}) from exc
        if quantity < 1:
            raise ValidationError({"lines": [f"Quantity for {product_id} must be at least 1"]})
        if unit_price < 0:
            raise ValidationError({"lines": [f"Unit price for {product_id} cannot be negative"]})
        validated.append({"product_id": product_id, "unit_price": unit_price, "quantity": quantity})
    return validated


def _payment_method(value):
    try:
        method = PaymentMethod(value or PaymentMethod.AIRWALLEX.value)
    except ValueError as exc:
        raise ValidationError({"payment_method": [f"Unknown payment method {value}"]}) from exc
    if method not in GATEWAY_PAYMENT_METHODS:
        raise ValidationError(
            {"payment_method": [f"Payment method {method.value} is not settled through the payment gateway"]}
        )
    return method


def _placement(record, request_id, created) -> dict:
    return {
        "order_id": str(record.order_id),
        "payment_intent_id": record.intent_id,
        "client_secret": record.client_secret,
        "request_id": request_id,
        "created": created,
    }


def place_order(customer_id, lines, coupon_code, currency, payment_method, request_id):
    """Price, open the intent and persist the order. Returns the placement summary."""
    lines = _validated_lines(lines)
    method = _payment_method(payment_method)
    currency = (currency or get_settings().currency).upper()

    coupon = CouponPolicy().resolve(coupon_code, lines)
    price = quote(lines, coupon)
    if price.total <= 0:
        raise ValidationError({"total": ["Order total must be greater than 0"]})

    order = Order.new()
    request_id = request_id or str(uuid4())
    try:
        intent = get_gateway().create_intent(
            order_id=str(order.id),
            amount=price.total,
            currency=currency,
            request_id=request_id,
        )
    except GatewayTimeoutError as exc:
        # Callers retry with this id to reach the same provider intent
        exc.request_id = request_id
        logger.warning("order_placement_timed_out", order_id=str(order.id), request_id=request_id)
        raise

    existing = find_intent(intent.id)
    if existing is not None:
        logger.info(
            "order_placement_replayed",
            order_id=str(existing.order_id),
            intent_id=intent.id,
            request_id=request_id,
        )
        return _placement(existing, request_id, created=False)

    order.place(
        customer_id=customer_id,
        lines=lines,
        quote=price,
        currency=currency,
        intent_id=intent.id,
        coupon_code=coupon.code if coupon else None,
        payment_method=method.value,
        request_id=request_id,
    )
    record = PaymentIntentRecord.mirror(intent, order.id)
    current_domain.repository_for(Order).add(order)
    current_domain.repository_for(PaymentIntentRecord).add(record)

    logger.info(
        "order_placed",
        order_id=str(order.id),
        intent_id=intent.id,
        total=str(price.total),
        currency=currency,
    )
    return _placement(record, request_id, created=True)


@checkout.command_handler(part_of=Order)
class PlaceOrderHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        lines = json.loads(command.lines) if isinstance(command.lines, str) else command.lines
        return place_order(
            customer_id=command.customer_id,
            lines=lines,
            coupon_code=command.coupon_code,
            currency=command.currency,
            payment_method=command.payment_method,
            request_id=command.request_id,
        )

    @handle(CheckoutCart)
    def checkout_cart(self, command):
        """Place the cart's contents. The cart itself is emptied by ConvertCartToOrder."""
        cart = current_domain.repository_for(ShoppingCart).get(command.cart_id)

        order_id = cart.placed_as(command.request_id)
        if order_id is not None:
            order = current_domain.repository_for(Order).get(order_id)
            logger.info("cart_checkout_replayed", cart_id=str(cart.id), order_id=str(order_id))
            return _placement(find_intent(order.payment_intent_id), command.request_id, created=False)

        snapshot = cart.snapshot()
        if not snapshot:
            raise ValidationError({"cart": ["Cannot check out an empty cart"]})

        return place_order(
            customer_id=command.customer_id,
            lines=snapshot,
            coupon_code=cart.coupon_code,
            currency=command.currency,
            payment_method=command.payment_method,
            request_id=command.request_id,
        )
