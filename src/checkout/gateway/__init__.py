"""Payment gateway factory.

Provides get_gateway() / set_gateway() to swap implementations:
- AirwallexGateway when Airwallex credentials are configured
- FakeGateway otherwise (development and testing)
"""

from checkout.config import get_settings
from checkout.gateway.airwallex_adapter import AirwallexGateway
from checkout.gateway.fake_adapter import FakeGateway
from checkout.gateway.port import (
    GatewayAuthError,
    GatewayError,
    GatewayRequestError,
    GatewayTimeoutError,
    Intent,
    IntentStatus,
    PaymentGateway,
    RefundResult,
    RefundStatusInfo,
)

__all__ = [
    "AirwallexGateway",
    "FakeGateway",
    "GatewayAuthError",
    "GatewayError",
    "GatewayRequestError",
    "GatewayTimeoutError",
    "Intent",
    "IntentStatus",
    "PaymentGateway",
    "RefundResult",
    "RefundStatusInfo",
    "get_gateway",
    "reset_gateway",
    "set_gateway",
]

_current_gateway: PaymentGateway | None = None


def get_gateway() -> PaymentGateway:
    """Return the current payment gateway, building the default on first use."""
    global _current_gateway
    if _current_gateway is None:
        settings = get_settings()
        if settings.has_gateway_credentials:
            _current_gateway = AirwallexGateway.from_settings(settings)
        else:
            _current_gateway = FakeGateway()
    return _current_gateway


def set_gateway(gateway: PaymentGateway) -> None:
    """Override the active payment gateway (useful for tests)."""
    global _current_gateway
    _current_gateway = gateway


def reset_gateway() -> None:
    """Reset to default gateway."""
    global _current_gateway
    _current_gateway = None
