"""Airwallex payment gateway adapter.

Talks to the Airwallex Payment Acceptance API over HTTP with ``requests``.

Authentication: a bearer token is obtained from
``/api/v1/authentication/login`` using the static ``x-client-id`` and
``x-api-key`` credentials. The token is cached until shortly before its
``expires_at`` and dropped as soon as the provider answers 401, after which
the call is replayed once with a fresh token. A second 401 surfaces as
GatewayAuthError.

Every request carries a bounded ``(connect, read)`` timeout. A timeout is
reported as GatewayTimeoutError: the request may still have been applied
provider-side, so callers re-query (or retry with the same request_id)
rather than assume failure.
"""

import threading
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import requests
import structlog

from checkout.gateway.port import (
    GatewayAuthError,
    GatewayRequestError,
    GatewayTimeoutError,
    Intent,
    IntentStatus,
    PaymentGateway,
    RefundResult,
    RefundStatusInfo,
)
from checkout.gateway.validation import ensure_positive_amount

logger = structlog.get_logger(__name__)

TOKEN_REFRESH_MARGIN = timedelta(seconds=60)
DEFAULT_TOKEN_TTL = timedelta(minutes=30)


def _parse_expiry(value, now: datetime) -> datetime:
    if not value:
        return now + DEFAULT_TOKEN_TTL
    try:
        expires_at = datetime.fromisoformat(str(value))
    except ValueError:
        logger.warning("airwallex_token_expiry_unparseable", expires_at=value)
        return now + DEFAULT_TOKEN_TTL
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=UTC)
    return expires_at


def _error_message(response, default: str) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or default
    if isinstance(body, dict):
        return body.get("message") or body.get("error") or default
    return default


class AirwallexGateway(PaymentGateway):
    """Production gateway backed by the Airwallex HTTP API."""

    def __init__(
        self,
        base_url: str,
        client_id: str,
        api_key: str,
        connect_timeout: float = 3.05,
        read_timeout: float = 10.0,
        session: requests.Session | None = None,
        clock=None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.client_id = client_id
        self.api_key = api_key
        self.timeout = (connect_timeout, read_timeout)
        self.session = session or requests.Session()
        self._clock = clock or (lambda: datetime.now(UTC))
        self._token: str | None = None
        self._token_expires_at: datetime | None = None
        self._token_lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings) -> "AirwallexGateway":
        return cls(
            base_url=settings.airwallex_base_url,
            client_id=settings.airwallex_client_id,
            api_key=settings.airwallex_api_key,
            connect_timeout=settings.connect_timeout,
            read_timeout=settings.read_timeout,
        )

    # -------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------
    def _credential_headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-client-id": self.client_id,
            "x-api-key": self.api_key,
        }

    def _send(self, method: str, path: str, headers: dict, payload: dict | None = None):
        url = f"{self.base_url}{path}"
        try:
            return self.session.request(method, url, headers=headers, json=payload, timeout=self.timeout)
        except requests.Timeout as exc:
            logger.warning("airwallex_timeout", method=method, path=path)
            raise GatewayTimeoutError(f"Airwallex request timed out: {method} {path}") from exc
        except requests.RequestException as exc:
            logger.warning("airwallex_unreachable", method=method, path=path, error=str(exc))
            raise GatewayRequestError(f"Airwallex request failed: {exc}") from exc

    def authenticate(self) -> str:
        """Return a valid bearer token, logging in only when the cached one is stale."""
        with self._token_lock:
            now = self._clock()
            if self._token and self._token_expires_at and now < self._token_expires_at - TOKEN_REFRESH_MARGIN:
                return self._token

            response = self._send("POST", "/api/v1/authentication/login", self._credential_headers())
            if not response.ok:
                self._token = None
                self._token_expires_at = None
                raise GatewayAuthError(
                    _error_message(response, "Airwallex authentication failed"),
                    status_code=response.status_code,
                )

            body = response.json()
            self._token = body["token"]
            self._token_expires_at = _parse_expiry(body.get("expires_at"), now)
            logger.info("airwallex_authenticated", expires_at=self._token_expires_at.isoformat())
            return self._token

    def invalidate_token(self) -> None:
        with self._token_lock:
            self._token = None
            self._token_expires_at = None

    def _call(self, method: str, path: str, payload: dict | None = None, failure: str = "Airwallex request failed"):
        for attempt in (1, 2):
            headers = self._credential_headers()
            headers["Authorization"] = f"Bearer {self.authenticate()}"
            response = self._send(method, path, headers, payload)

            if response.status_code == 401:
                self.invalidate_token()
                if attempt == 1:
                    logger.info("airwallex_token_rejected", path=path)
                    continue
                raise GatewayAuthError(_error_message(response, "Airwallex rejected the credentials"), status_code=401)

            if not response.ok:
                message = _error_message(response, failure)
                logger.warning("airwallex_request_failed", path=path, status=response.status_code, message=message)
                raise GatewayRequestError(message, status_code=response.status_code)
            return response.json()

    # -------------------------------------------------------------------
    # Payment intents
    # -------------------------------------------------------------------
    def create_intent(self, order_id, amount, currency, request_id) -> Intent:
        body = self._call(
            "POST",
            "/api/v1/pa/payment_intents/create",
            {
                "request_id": request_id,
                "amount": float(amount),
                "currency": currency,
                "merchant_order_id": order_id,
                "metadata": {"order_id": order_id},
            },
            failure="Failed to create payment intent",
        )
        return Intent(
            id=body["id"],
            client_secret=body.get("client_secret", ""),
            amount=Decimal(str(body.get("amount", amount))),
            currency=body.get("currency", currency),
            status=IntentStatus.normalise(body.get("status")),
        )

    def get_intent_status(self, intent_id) -> IntentStatus:
        body = self._call(
            "GET",
            f"/api/v1/pa/payment_intents/{intent_id}",
            failure="Failed to fetch payment status",
        )
        return IntentStatus.normalise(body.get("status"))

    # -------------------------------------------------------------------
    # Refunds
    # -------------------------------------------------------------------
    def create_refund(self, intent_id, amount, reason, request_id) -> RefundResult:
        ensure_positive_amount(amount)
        body = self._call(
            "POST",
            f"/api/v1/pa/payment_intents/{intent_id}/refunds",
            {
                "request_id": request_id,
                "amount": float(amount),
                "reason": reason,
                "metadata": {"refund_request_id": request_id},
            },
            failure="Failed to create refund",
        )
        return RefundResult(id=body["id"], status=body.get("status", ""))

    def get_refund_status(self, refund_id, intent_id) -> RefundStatusInfo:
        body = self._call(
            "GET",
            f"/api/v1/pa/payment_intents/{intent_id}/refunds/{refund_id}",
            failure="Failed to fetch refund status",
        )
        return RefundStatusInfo(
            id=body.get("id", refund_id),
            status=body.get("status", ""),
            amount=Decimal(str(body.get("amount", 0))),
            created_at=body.get("created_at"),
        )
