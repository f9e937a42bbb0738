"""Tests for the PaymentGateway port and the in-memory FakeGateway."""

from decimal import Decimal

import pytest
from checkout.gateway import (
    AirwallexGateway,
    FakeGateway,
    GatewayAuthError,
    GatewayRequestError,
    GatewayTimeoutError,
    IntentStatus,
    get_gateway,
    reset_gateway,
    set_gateway,
)
from checkout.shared.exceptions import InvalidAmount


class TestIntentStatus:
    @pytest.mark.parametrize(
        "provider_status, expected",
        [
            ("SUCCEEDED", IntentStatus.SUCCEEDED),
            ("succeeded", IntentStatus.SUCCEEDED),
            ("FAILED", IntentStatus.FAILED),
            ("CANCELLED", IntentStatus.CANCELLED),
            ("CANCELED", IntentStatus.CANCELLED),
            ("REQUIRES_PAYMENT_METHOD", IntentStatus.PENDING),
            ("REQUIRES_CAPTURE", IntentStatus.PENDING),
            ("INITIAL", IntentStatus.INITIAL),
            (None, IntentStatus.INITIAL),
        ],
    )
    def test_normalise(self, provider_status, expected):
        assert IntentStatus.normalise(provider_status) == expected

    def test_terminal_statuses(self):
        assert IntentStatus.SUCCEEDED.is_terminal
        assert IntentStatus.FAILED.is_terminal
        assert IntentStatus.CANCELLED.is_terminal
        assert not IntentStatus.PENDING.is_terminal
        assert not IntentStatus.INITIAL.is_terminal


class TestFakeGatewayIntents:
    def test_create_intent(self):
        gateway = FakeGateway()
        intent = gateway.create_intent("ord-001", Decimal("245.00"), "CNY", "req-001")

        assert intent.id.startswith("int_fake_")
        assert intent.client_secret
        assert intent.amount == Decimal("245.00")
        assert intent.status == IntentStatus.INITIAL
        assert len(gateway.calls_to("create_intent")) == 1

    def test_same_request_id_returns_same_intent(self):
        gateway = FakeGateway()
        first = gateway.create_intent("ord-001", Decimal("245.00"), "CNY", "req-001")
        second = gateway.create_intent("ord-002", Decimal("245.00"), "CNY", "req-001")
        assert first.id == second.id

    def test_status_follows_provider_side_changes(self):
        gateway = FakeGateway()
        intent = gateway.create_intent("ord-001", Decimal("10"), "CNY", "req-001")
        gateway.set_intent_status(intent.id, IntentStatus.SUCCEEDED)
        assert gateway.get_intent_status(intent.id) == IntentStatus.SUCCEEDED

    def test_unknown_intent(self):
        with pytest.raises(GatewayRequestError) as exc:
            FakeGateway().get_intent_status("int_missing")
        assert exc.value.status_code == 404

    def test_configured_failure(self):
        gateway = FakeGateway()
        gateway.configure(should_succeed=False, failure_reason="Insufficient funds")
        with pytest.raises(GatewayRequestError) as exc:
            gateway.create_intent("ord-001", Decimal("10"), "CNY", "req-001")
        assert exc.value.message == "Insufficient funds"
        assert not gateway.intents

    def test_auth_failure_mode(self):
        gateway = FakeGateway()
        gateway.configure(should_succeed=False, failure_mode="auth")
        with pytest.raises(GatewayAuthError):
            gateway.authenticate()

    def test_timeout_failure_mode(self):
        gateway = FakeGateway()
        gateway.configure(should_succeed=False, failure_mode="timeout")
        with pytest.raises(GatewayTimeoutError):
            gateway.create_intent("ord-001", Decimal("10"), "CNY", "req-001")

    def test_timed_out_create_is_applied(self):
        gateway = FakeGateway()
        gateway.configure(should_succeed=False, failure_mode="timeout")
        with pytest.raises(GatewayTimeoutError):
            gateway.create_intent("ord-001", Decimal("10"), "CNY", "req-001")

        gateway.configure(should_succeed=True)
        intent = gateway.create_intent("ord-001", Decimal("10"), "CNY", "req-001")

        assert list(gateway.intents) == [intent.id]

    def test_timeout_is_a_request_error(self):
        assert issubclass(GatewayTimeoutError, GatewayRequestError)


class TestFakeGatewayRefunds:
    def test_create_refund(self):
        gateway = FakeGateway()
        intent = gateway.create_intent("ord-001", Decimal("245.00"), "CNY", "req-001")
        result = gateway.create_refund(intent.id, Decimal("50"), "Damaged", "rf-001")

        assert result.id.startswith("rfd_fake_")
        assert result.status == "RECEIVED"

    def test_same_request_id_refunds_once(self):
        gateway = FakeGateway()
        first = gateway.create_refund("int_1", Decimal("50"), "Damaged", "rf-001")
        second = gateway.create_refund("int_1", Decimal("50"), "Damaged", "rf-001")

        assert first.id == second.id
        assert len(gateway.refunds) == 1

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-5"), None])
    def test_non_positive_amount_rejected_before_any_call(self, amount):
        gateway = FakeGateway()
        with pytest.raises(InvalidAmount):
            gateway.create_refund("int_1", amount, "Damaged", "rf-001")
        assert gateway.calls_to("create_refund") == []

    def test_refund_status(self):
        gateway = FakeGateway()
        result = gateway.create_refund("int_1", Decimal("50"), "Damaged", "rf-001")
        info = gateway.get_refund_status(result.id, "int_1")

        assert info.status == "RECEIVED"
        assert info.amount == Decimal("50")
        assert info.created_at is not None

    def test_refund_status_for_other_intent(self):
        gateway = FakeGateway()
        result = gateway.create_refund("int_1", Decimal("50"), "Damaged", "rf-001")
        with pytest.raises(GatewayRequestError):
            gateway.get_refund_status(result.id, "int_2")


class TestGatewayFactory:
    def test_fake_by_default(self, monkeypatch):
        from checkout.config import reset_settings

        monkeypatch.delenv("AIRWALLEX_CLIENT_ID", raising=False)
        monkeypatch.delenv("AIRWALLEX_API_KEY", raising=False)
        reset_settings()
        reset_gateway()
        assert isinstance(get_gateway(), FakeGateway)

    def test_airwallex_when_credentials_configured(self, monkeypatch):
        from checkout.config import reset_settings

        monkeypatch.setenv("AIRWALLEX_CLIENT_ID", "client-id")
        monkeypatch.setenv("AIRWALLEX_API_KEY", "api-key")
        reset_settings()
        reset_gateway()
        gateway = get_gateway()
        assert isinstance(gateway, AirwallexGateway)
        assert gateway.timeout == (3.05, 10.0)

    def test_set_gateway(self):
        gateway = FakeGateway()
        set_gateway(gateway)
        assert get_gateway() is gateway
