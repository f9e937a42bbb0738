"""WebhookVerifier — authenticates inbound payment processor events.

The signature is an HMAC-SHA256 hex digest, keyed with the shared webhook
secret, over the canonical serialization of the JSON payload: compact
separators, keys in the order they arrived, non-ASCII left as is. This is
the same text the provider signs, so a payload re-encoded by a proxy with
different whitespace still verifies.

Verification is a pure gate. It never raises and never touches state; the
transport turns a False into a 401 before anything reaches the reconciler.
"""

import hashlib
import hmac
import json
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, ValidationError

logger = structlog.get_logger(__name__)

PAYMENT_SUCCEEDED = "payment_intent.succeeded"
PAYMENT_FAILED = "payment_intent.failed"
PAYMENT_CANCELLED = "payment_intent.cancelled"

RECONCILED_EVENT_TYPES = (PAYMENT_SUCCEEDED, PAYMENT_FAILED, PAYMENT_CANCELLED)


class SignatureError(Exception):
    """An inbound webhook could not be authenticated."""


class PaymentEventData(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    status: str | None = None


class PaymentEvent(BaseModel):
    """Inbound provider event: ``{id?, type, data: {id, ...}}``."""

    model_config = ConfigDict(extra="allow")

    id: str | None = None
    type: str
    data: PaymentEventData

    @property
    def intent_id(self) -> str:
        return self.data.id

    @property
    def is_reconciled(self) -> bool:
        return self.type in RECONCILED_EVENT_TYPES


def _as_bytes(raw_payload: bytes | str) -> bytes:
    if isinstance(raw_payload, str):
        return raw_payload.encode("utf-8")
    return raw_payload


def canonicalize(payload: Any) -> bytes:
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


class WebhookVerifier:
    @staticmethod
    def sign(payload: Any, secret: str) -> str:
        """Expected signature header for ``payload`` (a parsed object or raw JSON)."""
        if isinstance(payload, (bytes, str)):
            payload = json.loads(_as_bytes(payload))
        return hmac.new(secret.encode("utf-8"), canonicalize(payload), hashlib.sha256).hexdigest()

    @staticmethod
    def verify(raw_payload: bytes | str | None, signature: str | None, secret: str | None) -> bool:
        if not signature or not secret or not raw_payload:
            logger.warning("webhook_signature_missing", has_signature=bool(signature), has_secret=bool(secret))
            return False

        try:
            payload = json.loads(_as_bytes(raw_payload))
        except (ValueError, UnicodeDecodeError):
            logger.warning("webhook_payload_malformed")
            return False

        expected = hmac.new(secret.encode("utf-8"), canonicalize(payload), hashlib.sha256).hexdigest()
        candidate = signature.strip().lower()
        if not candidate.isascii() or not hmac.compare_digest(expected.encode("ascii"), candidate.encode("ascii")):
            logger.warning("webhook_signature_mismatch")
            return False
        return True

    @staticmethod
    def parse_event(raw_payload: bytes | str) -> PaymentEvent:
        """Parse a verified payload. Raises SignatureError on a malformed body."""
        try:
            return PaymentEvent.model_validate_json(_as_bytes(raw_payload))
        except ValidationError as exc:
            raise SignatureError(f"Malformed webhook payload: {exc.error_count()} error(s)") from exc

    def authenticate(self, raw_payload: bytes | str, signature: str | None, secret: str | None) -> PaymentEvent:
        """Verify then parse; raises SignatureError if either step fails."""
        if not self.verify(raw_payload, signature, secret):
            raise SignatureError("Invalid webhook signature")
        return self.parse_event(raw_payload)
