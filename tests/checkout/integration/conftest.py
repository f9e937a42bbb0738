import pytest
from checkout.api.routes import (
    cart_router,
    coupon_router,
    order_router,
    payment_router,
    refund_router,
    register_gateway_error_handlers,
)
from checkout.domain import checkout
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient
from protean.integrations.fastapi import register_exception_handlers

WEBHOOK_SECRET = "whsec_test"


@pytest.fixture()
def webhook_secret(monkeypatch):
    from checkout.config import reset_settings

    monkeypatch.setenv("AIRWALLEX_WEBHOOK_SECRET", WEBHOOK_SECRET)
    reset_settings()
    return WEBHOOK_SECRET


@pytest.fixture()
def client(webhook_secret):
    app = FastAPI()

    @app.middleware("http")
    async def checkout_context(request: Request, call_next):
        with checkout.domain_context():
            return await call_next(request)

    register_exception_handlers(app)
    register_gateway_error_handlers(app)
    app.include_router(cart_router)
    app.include_router(coupon_router)
    app.include_router(order_router)
    app.include_router(payment_router)
    app.include_router(refund_router)
    return TestClient(app)


@pytest.fixture()
def placed_order(client):
    response = client.post(
        "/orders",
        json={
            "customer_id": "cust-001",
            "lines": [{"product_id": "prod-001", "unit_price": 125.0, "quantity": 2}],
            "request_id": "req-api-001",
        },
    )
    assert response.status_code == 201
    return response.json()
