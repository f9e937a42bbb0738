"""Application tests for the refund workflow against the FakeGateway."""

import pytest
from checkout.gateway import GatewayRequestError, GatewayTimeoutError
from checkout.order.order import Order, OrderStatus
from checkout.refund.refund_request import RefundRequest, RefundStatus
from checkout.refund.workflow import RefundWorkflow
from checkout.shared.exceptions import InvalidAmount, StateConflictError
from checkout.webhook.verifier import PaymentEvent
from protean import current_domain


@pytest.fixture()
def paid(reconciler, placed):
    reconciler.handle_event(PaymentEvent(type="payment_intent.succeeded", data={"id": placed["payment_intent_id"]}))
    return placed


@pytest.fixture()
def workflow():
    return RefundWorkflow()


def _refund(refund_id):
    return current_domain.repository_for(RefundRequest).get(refund_id)


def _order(order_id):
    return current_domain.repository_for(Order).get(order_id)


class TestRequestRefund:
    def test_request_is_pending(self, workflow, paid):
        refund_id = workflow.request(paid["order_id"], amount=50.0, reason="Damaged", requested_by="cust-001")

        refund = _refund(refund_id)
        assert refund.status == RefundStatus.PENDING.value
        assert refund.payment_intent_id == paid["payment_intent_id"]

    def test_above_total_rejected_without_gateway_call(self, workflow, reconciler, fake_gateway):
        placed = reconciler.place_order(
            customer_id="cust-001",
            lines=[{"product_id": "prod-001", "unit_price": 35.0, "quantity": 1}],
        )
        reconciler.handle_event(
            PaymentEvent(type="payment_intent.succeeded", data={"id": placed["payment_intent_id"]})
        )
        assert _order(placed["order_id"]).pricing.total == 50.0

        with pytest.raises(InvalidAmount):
            workflow.request(placed["order_id"], amount=100.0, reason="Too much", requested_by="cust-001")

        assert fake_gateway.calls_to("create_refund") == []

    def test_non_positive_amount_rejected(self, workflow, paid):
        with pytest.raises(InvalidAmount):
            workflow.request(paid["order_id"], amount=0, reason="Nothing", requested_by="cust-001")

    def test_unpaid_order_rejected(self, workflow, placed):
        with pytest.raises(StateConflictError):
            workflow.request(placed["order_id"], amount=10.0, reason="Damaged", requested_by="cust-001")


class TestApproveRefund:
    def test_approve_refunds_order(self, workflow, paid, fake_gateway):
        refund_id = workflow.request(paid["order_id"], amount=50.0, reason="Damaged", requested_by="cust-001")

        result = workflow.approve(refund_id, approved_by="ops-001")

        assert result["status"] == RefundStatus.COMPLETED.value
        refund = _refund(refund_id)
        assert refund.gateway_refund_id == result["gateway_refund_id"]
        assert refund.decided_by == "ops-001"
        order = _order(paid["order_id"])
        assert order.status == OrderStatus.REFUNDED.value
        assert order.refunded_amount == 50.0

        call = fake_gateway.calls_to("create_refund")[0]
        assert call["intent_id"] == paid["payment_intent_id"]
        assert call["request_id"] == refund_id

    def test_gateway_failure_keeps_request_pending(self, workflow, paid, fake_gateway):
        refund_id = workflow.request(paid["order_id"], amount=50.0, reason="Damaged", requested_by="cust-001")
        fake_gateway.configure(should_succeed=False, failure_reason="Refund window closed")

        with pytest.raises(GatewayRequestError):
            workflow.approve(refund_id, approved_by="ops-001")

        assert _refund(refund_id).status == RefundStatus.PENDING.value
        assert _order(paid["order_id"]).status == OrderStatus.PAID.value

    def test_reapproval_after_timeout_refunds_once(self, workflow, paid, fake_gateway):
        refund_id = workflow.request(paid["order_id"], amount=50.0, reason="Damaged", requested_by="cust-001")
        fake_gateway.configure(should_succeed=False, failure_mode="timeout")
        with pytest.raises(GatewayTimeoutError):
            workflow.approve(refund_id, approved_by="ops-001")

        fake_gateway.configure(should_succeed=True)
        workflow.approve(refund_id, approved_by="ops-001")

        assert len(fake_gateway.refunds) == 1
        assert {call["request_id"] for call in fake_gateway.calls_to("create_refund")} == {refund_id}

    def test_approve_twice_rejected_before_gateway_call(self, workflow, paid, fake_gateway):
        refund_id = workflow.request(paid["order_id"], amount=50.0, reason="Damaged", requested_by="cust-001")
        workflow.approve(refund_id, approved_by="ops-001")

        with pytest.raises(StateConflictError):
            workflow.approve(refund_id, approved_by="ops-001")
        assert len(fake_gateway.calls_to("create_refund")) == 1

    def test_approve_rejected_request_rejected(self, workflow, paid, fake_gateway):
        refund_id = workflow.request(paid["order_id"], amount=50.0, reason="Damaged", requested_by="cust-001")
        workflow.reject(refund_id, rejected_by="ops-001", reason="Outside return window")

        with pytest.raises(StateConflictError):
            workflow.approve(refund_id, approved_by="ops-001")
        assert fake_gateway.calls_to("create_refund") == []

    def test_second_request_after_refund_rejected(self, workflow, paid):
        first = workflow.request(paid["order_id"], amount=50.0, reason="Damaged", requested_by="cust-001")
        second = workflow.request(paid["order_id"], amount=20.0, reason="Also damaged", requested_by="cust-001")
        workflow.approve(first, approved_by="ops-001")

        with pytest.raises(StateConflictError):
            workflow.approve(second, approved_by="ops-001")


class TestRejectRefund:
    def test_reject(self, workflow, paid):
        refund_id = workflow.request(paid["order_id"], amount=50.0, reason="Damaged", requested_by="cust-001")
        workflow.reject(refund_id, rejected_by="ops-001", reason="Outside return window")

        refund = _refund(refund_id)
        assert refund.status == RefundStatus.REJECTED.value
        assert refund.rejection_reason == "Outside return window"
        assert _order(paid["order_id"]).status == OrderStatus.PAID.value


class TestCheckRefundStatus:
    def test_status_of_completed_refund(self, workflow, paid):
        refund_id = workflow.request(paid["order_id"], amount=50.0, reason="Damaged", requested_by="cust-001")
        workflow.approve(refund_id, approved_by="ops-001")

        status = workflow.check_status(refund_id)

        assert status["refund_id"] == refund_id
        assert status["status"] == "RECEIVED"
        assert status["amount"] == 50.0
        assert status["created_at"] is not None

    def test_status_mirrors_provider(self, workflow, paid, fake_gateway):
        refund_id = workflow.request(paid["order_id"], amount=50.0, reason="Damaged", requested_by="cust-001")
        result = workflow.approve(refund_id, approved_by="ops-001")
        fake_gateway.refunds[result["gateway_refund_id"]]["status"] = "SETTLED"

        workflow.check_status(refund_id)

        assert _refund(refund_id).gateway_status == "SETTLED"

    def test_pending_refund_has_no_provider_status(self, workflow, paid, fake_gateway):
        refund_id = workflow.request(paid["order_id"], amount=50.0, reason="Damaged", requested_by="cust-001")
        with pytest.raises(StateConflictError):
            workflow.check_status(refund_id)
        assert fake_gateway.calls_to("get_refund_status") == []
