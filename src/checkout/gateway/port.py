"""Payment gateway port (abstract interface).

Defines the contract every payment processor adapter implements, so the
order reconciler and refund workflow can run against FakeGateway in
development/test and AirwallexGateway in production without change.

Every call is synchronous from the caller's point of view but may have
taken effect provider-side even when it raised. Callers pass a
``request_id`` so a retried create is deduplicated by the provider, and
reconcile through status queries rather than trusting the triggering call.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum


class IntentStatus(Enum):
    INITIAL = "INITIAL"
    PENDING = "PENDING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    @classmethod
    def normalise(cls, provider_status: str | None) -> "IntentStatus":
        """Map a provider status string onto the five statuses we track.

        Intermediate provider statuses (``REQUIRES_PAYMENT_METHOD``,
        ``REQUIRES_CAPTURE`` and friends) count as PENDING.
        """
        value = (provider_status or "").strip().upper()
        if value in ("SUCCEEDED", "SUCCESS", "PAID"):
            return cls.SUCCEEDED
        if value in ("FAILED", "FAILURE"):
            return cls.FAILED
        if value in ("CANCELLED", "CANCELED"):
            return cls.CANCELLED
        if value in ("", "INITIAL", "CREATED"):
            return cls.INITIAL
        return cls.PENDING

    @property
    def is_terminal(self) -> bool:
        return self in (IntentStatus.SUCCEEDED, IntentStatus.FAILED, IntentStatus.CANCELLED)


@dataclass(frozen=True)
class Intent:
    """A payment intent as returned by the provider."""

    id: str
    client_secret: str
    amount: Decimal
    currency: str
    status: IntentStatus = IntentStatus.INITIAL


@dataclass(frozen=True)
class RefundResult:
    id: str
    status: str


@dataclass(frozen=True)
class RefundStatusInfo:
    id: str
    status: str
    amount: Decimal
    created_at: datetime | str | None = None


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------
class GatewayError(Exception):
    """Base class for payment processor failures."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class GatewayAuthError(GatewayError):
    """Credentials were rejected by the provider."""


class GatewayRequestError(GatewayError):
    """The provider answered with a non-2xx status; its message is kept."""


class GatewayTimeoutError(GatewayRequestError):
    """The call timed out. The outcome is unknown, re-query before concluding."""

    request_id: str | None = None


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    @abstractmethod
    def authenticate(self) -> str:
        """Obtain a bearer token for subsequent calls."""
        ...

    @abstractmethod
    def create_intent(
        self,
        order_id: str,
        amount: Decimal,
        currency: str,
        request_id: str,
    ) -> Intent:
        """Create a payment intent for an order."""
        ...

    @abstractmethod
    def get_intent_status(self, intent_id: str) -> IntentStatus:
        """Fetch the provider's current status for an intent."""
        ...

    @abstractmethod
    def create_refund(
        self,
        intent_id: str,
        amount: Decimal,
        reason: str,
        request_id: str,
    ) -> RefundResult:
        """Refund (part of) a captured intent.

        Implementations raise InvalidAmount for ``amount <= 0`` before
        any provider call.
        """
        ...

    @abstractmethod
    def get_refund_status(self, refund_id: str, intent_id: str) -> RefundStatusInfo:
        """Fetch a refund's provider-side status."""
        ...
