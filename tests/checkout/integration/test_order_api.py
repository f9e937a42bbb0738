"""Integration tests for order API endpoints."""

from checkout.order.order import Order, OrderStatus
from checkout.order.reconciler import OrderReconciler
from checkout.webhook.verifier import PaymentEvent
from protean import current_domain


def _pay(order):
    OrderReconciler().handle_event(
        PaymentEvent(type="payment_intent.succeeded", data={"id": order["payment_intent_id"]})
    )


def _status(order_id):
    return current_domain.repository_for(Order).get(order_id).status


class TestPlaceOrderEndpoint:
    def test_place_order(self, placed_order):
        assert placed_order["payment_intent_id"].startswith("int_fake_")
        assert placed_order["client_secret"]
        assert _status(placed_order["order_id"]) == OrderStatus.PENDING.value

    def test_replay_returns_existing_order(self, client, placed_order):
        response = client.post(
            "/orders",
            json={
                "customer_id": "cust-001",
                "lines": [{"product_id": "prod-001", "unit_price": 125.0, "quantity": 2}],
                "request_id": "req-api-001",
            },
        )
        assert response.status_code == 200
        assert response.json()["order_id"] == placed_order["order_id"]

    def test_empty_lines_is_422(self, client):
        response = client.post("/orders", json={"customer_id": "cust-001", "lines": []})
        assert response.status_code == 422

    def test_cash_on_delivery_is_400(self, client):
        response = client.post(
            "/orders",
            json={
                "customer_id": "cust-001",
                "lines": [{"product_id": "prod-001", "unit_price": 125.0, "quantity": 2}],
                "payment_method": "cod",
            },
        )
        assert response.status_code == 400

    def test_gateway_error_is_502(self, client, fake_gateway):
        fake_gateway.configure(should_succeed=False, failure_reason="Merchant account suspended")
        response = client.post(
            "/orders",
            json={"customer_id": "cust-001", "lines": [{"product_id": "prod-001", "unit_price": 10.0, "quantity": 1}]},
        )
        assert response.status_code == 502
        assert response.json()["error"] == "Merchant account suspended"

    def test_gateway_timeout_is_504(self, client, fake_gateway):
        fake_gateway.configure(should_succeed=False, failure_mode="timeout")
        response = client.post(
            "/orders",
            json={"customer_id": "cust-001", "lines": [{"product_id": "prod-001", "unit_price": 10.0, "quantity": 1}]},
        )
        assert response.status_code == 504
        assert response.json()["outcome"] == "unknown"

    def test_timeout_retry_with_reported_request_id_opens_one_intent(self, client, fake_gateway):
        fake_gateway.configure(should_succeed=False, failure_mode="timeout")
        lines = [{"product_id": "prod-001", "unit_price": 10.0, "quantity": 1}]
        timed_out = client.post("/orders", json={"customer_id": "cust-001", "lines": lines})
        assert timed_out.status_code == 504
        request_id = timed_out.json()["request_id"]

        fake_gateway.configure(should_succeed=True)
        response = client.post("/orders", json={"customer_id": "cust-001", "lines": lines, "request_id": request_id})

        assert response.status_code == 201
        assert response.json()["request_id"] == request_id
        assert len(fake_gateway.intents) == 1


class TestOrderOperations:
    def test_cancel(self, client, placed_order):
        response = client.put(
            f"/orders/{placed_order['order_id']}/cancel",
            json={"reason": "Changed my mind", "actor": "cust-001"},
        )
        assert response.status_code == 200
        assert _status(placed_order["order_id"]) == OrderStatus.CANCELLED.value

    def test_cancel_paid_is_400(self, client, placed_order):
        _pay(placed_order)
        response = client.put(
            f"/orders/{placed_order['order_id']}/cancel",
            json={"reason": "Too late", "actor": "cust-001"},
        )
        assert response.status_code == 400

    def test_retry_after_failure(self, client, placed_order):
        OrderReconciler().handle_event(
            PaymentEvent(type="payment_intent.failed", data={"id": placed_order["payment_intent_id"]})
        )

        response = client.post(f"/orders/{placed_order['order_id']}/retry", json={"actor": "ops-001"})

        assert response.status_code == 200
        body = response.json()
        assert body["attempt_number"] == 2
        assert body["payment_intent_id"] != placed_order["payment_intent_id"]

    def test_fulfillment(self, client, placed_order):
        order_id = placed_order["order_id"]
        _pay(placed_order)

        assert client.put(f"/orders/{order_id}/processing", json={"actor": "ops-001"}).status_code == 200
        response = client.put(
            f"/orders/{order_id}/ship",
            json={"carrier": "SF Express", "tracking_number": "SF123", "actor": "ops-001"},
        )
        assert response.status_code == 200
        assert client.put(f"/orders/{order_id}/deliver", json={}).status_code == 200
        assert _status(order_id) == OrderStatus.DELIVERED.value

    def test_ship_unpaid_is_400(self, client, placed_order):
        response = client.put(
            f"/orders/{placed_order['order_id']}/ship",
            json={"carrier": "SF Express", "tracking_number": "SF123"},
        )
        assert response.status_code == 400

    def test_unknown_order_is_404(self, client):
        assert client.put("/orders/ord-missing/processing", json={}).status_code == 404
