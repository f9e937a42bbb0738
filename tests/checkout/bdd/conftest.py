"""Shared BDD fixtures and step definitions for the checkout domain."""

import json
from datetime import UTC, datetime
from decimal import Decimal

import pytest
from checkout.gateway import Intent
from checkout.order.events import (
    OrderCancelled,
    OrderPlaced,
    PaymentConfirmed,
    PaymentEventAnomalyRecorded,
    PaymentFailed,
    PaymentRetryStarted,
)
from checkout.order.intent import PaymentIntentRecord
from checkout.order.order import Order, payment_event_key
from protean import current_domain
from protean.exceptions import ValidationError
from protean.testing import given as given_
from pytest_bdd import given, parsers, then

# Map event name strings to classes for dynamic lookup in Then steps
_ORDER_EVENT_CLASSES = {
    "PaymentConfirmed": PaymentConfirmed,
    "PaymentFailed": PaymentFailed,
    "PaymentEventAnomalyRecorded": PaymentEventAnomalyRecorded,
    "PaymentRetryStarted": PaymentRetryStarted,
    "OrderCancelled": OrderCancelled,
}


# ---------------------------------------------------------------------------
# Scalar fixtures
# ---------------------------------------------------------------------------
@pytest.fixture()
def order_id():
    return "ord-001"


@pytest.fixture()
def customer_id():
    return "cust-001"


@pytest.fixture()
def error():
    """Container for captured validation errors."""
    return {"exc": None}


# ---------------------------------------------------------------------------
# Given steps — Order (event sourcing via protean.testing)
# ---------------------------------------------------------------------------
@given(parsers.cfparse('an order was placed with payment intent "{intent_id}"'), target_fixture="order")
def _(order_id, customer_id, intent_id):
    placed = OrderPlaced(
        order_id=order_id,
        customer_id=customer_id,
        lines=json.dumps([{"product_id": "prod-001", "unit_price": 125.0, "quantity": 2}]),
        subtotal=250.0,
        discount=20.0,
        shipping=15.0,
        total=245.0,
        currency="CNY",
        coupon_code="SAVE20",
        payment_method="airwallex",
        payment_intent_id=intent_id,
        placed_at=datetime.now(UTC),
    )
    intent = Intent(id=intent_id, client_secret=f"{intent_id}_secret", amount=Decimal("245.00"), currency="CNY")
    current_domain.repository_for(PaymentIntentRecord).add(PaymentIntentRecord.mirror(intent, order_id))
    return given_(Order, placed)


@given(parsers.cfparse('the payment for "{intent_id}" was confirmed'), target_fixture="order")
def _(order, order_id, intent_id):
    return order.after(
        PaymentConfirmed(
            order_id=order_id,
            payment_intent_id=intent_id,
            amount=245.0,
            source="webhook",
            event_key=payment_event_key(intent_id, "payment_intent.succeeded"),
            paid_at=datetime.now(UTC),
        )
    )


@given(parsers.cfparse('the payment for "{intent_id}" failed'), target_fixture="order")
def _(order, order_id, intent_id):
    return order.after(
        PaymentFailed(
            order_id=order_id,
            payment_intent_id=intent_id,
            reason="Card declined",
            source="webhook",
            event_key=payment_event_key(intent_id, "payment_intent.failed"),
            failed_at=datetime.now(UTC),
        )
    )


@given("the customer cancelled the order", target_fixture="order")
def _(order, order_id, customer_id):
    return order.after(
        OrderCancelled(
            order_id=order_id,
            reason="Changed my mind",
            cancelled_by=customer_id,
            cancelled_at=datetime.now(UTC),
        )
    )


# ---------------------------------------------------------------------------
# Then steps — Order (shared, plain assertions)
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the order status is "{status}"'))
def _(order, status):
    assert order.status == status


@then("the order action fails with a validation error")
def _(order):
    assert order.rejected
    assert isinstance(order.rejection, ValidationError)


@then(parsers.cfparse("a {event_type} order event is raised"))
def _(order, event_type):
    event_cls = _ORDER_EVENT_CLASSES[event_type]
    assert event_cls in order.events
