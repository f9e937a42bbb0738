"""Configurable fake payment gateway for development and testing.

Simulates the processor in memory without any external calls. It can be
configured at runtime to succeed or fail (manually through
/payments/gateway/configure, or from tests), records every call it
receives, and honours ``request_id`` the way the real provider does: a
repeated create with the same id returns the original intent or refund.
In "timeout" mode a create is applied before the error is raised, as when
the provider handled the call but the response never arrived.
"""

from datetime import UTC, datetime
from decimal import Decimal
from uuid import uuid4

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


class FakeGateway(PaymentGateway):
    """Configurable fake payment gateway."""

    def __init__(self) -> None:
        self.should_succeed: bool = True
        self.failure_reason: str = "Card declined"
        self.failure_mode: str = "request"  # request, auth, timeout
        self.calls: list[dict] = []
        self.intents: dict[str, dict] = {}
        self.refunds: dict[str, dict] = {}
        self._intents_by_request: dict[str, str] = {}
        self._refunds_by_request: dict[str, str] = {}

    def configure(
        self,
        should_succeed: bool,
        failure_reason: str = "Card declined",
        failure_mode: str = "request",
    ) -> None:
        """Configure gateway behavior at runtime."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.failure_mode = failure_mode

    def set_intent_status(self, intent_id: str, status: IntentStatus | str) -> None:
        """Move an intent provider-side, as the hosted payment flow would."""
        self.intents[intent_id]["status"] = IntentStatus(status)

    def calls_to(self, method: str) -> list[dict]:
        return [call for call in self.calls if call["method"] == method]

    def _fail(self) -> None:
        if self.failure_mode == "auth":
            raise GatewayAuthError(self.failure_reason, status_code=401)
        if self.failure_mode == "timeout":
            raise GatewayTimeoutError(self.failure_reason)
        raise GatewayRequestError(self.failure_reason, status_code=400)

    def authenticate(self) -> str:
        self.calls.append({"method": "authenticate"})
        if not self.should_succeed and self.failure_mode == "auth":
            self._fail()
        return "fake-token"

    def create_intent(self, order_id, amount, currency, request_id) -> Intent:
        self.calls.append(
            {
                "method": "create_intent",
                "order_id": order_id,
                "amount": amount,
                "currency": currency,
                "request_id": request_id,
            }
        )
        if not self.should_succeed and self.failure_mode != "timeout":
            self._fail()

        if request_id in self._intents_by_request:
            intent_id = self._intents_by_request[request_id]
        else:
            intent_id = f"int_fake_{uuid4().hex[:12]}"
            self.intents[intent_id] = {
                "order_id": order_id,
                "amount": Decimal(str(amount)),
                "currency": currency,
                "client_secret": f"{intent_id}_secret_{uuid4().hex[:8]}",
                "status": IntentStatus.INITIAL,
            }
            self._intents_by_request[request_id] = intent_id

        if not self.should_succeed:
            # Applied provider-side, response lost
            self._fail()
        return self._intent(intent_id)

    def _intent(self, intent_id: str) -> Intent:
        data = self.intents[intent_id]
        return Intent(
            id=intent_id,
            client_secret=data["client_secret"],
            amount=data["amount"],
            currency=data["currency"],
            status=data["status"],
        )

    def get_intent_status(self, intent_id) -> IntentStatus:
        self.calls.append({"method": "get_intent_status", "intent_id": intent_id})
        if not self.should_succeed:
            self._fail()
        if intent_id not in self.intents:
            raise GatewayRequestError(f"Payment intent {intent_id} not found", status_code=404)
        return self.intents[intent_id]["status"]

    def create_refund(self, intent_id, amount, reason, request_id) -> RefundResult:
        ensure_positive_amount(amount)
        self.calls.append(
            {
                "method": "create_refund",
                "intent_id": intent_id,
                "amount": amount,
                "reason": reason,
                "request_id": request_id,
            }
        )
        if not self.should_succeed and self.failure_mode != "timeout":
            self._fail()

        if request_id in self._refunds_by_request:
            refund_id = self._refunds_by_request[request_id]
        else:
            refund_id = f"rfd_fake_{uuid4().hex[:12]}"
            self.refunds[refund_id] = {
                "intent_id": intent_id,
                "amount": Decimal(str(amount)),
                "status": "RECEIVED",
                "created_at": datetime.now(UTC).isoformat(),
            }
            self._refunds_by_request[request_id] = refund_id

        if not self.should_succeed:
            self._fail()
        return RefundResult(id=refund_id, status=self.refunds[refund_id]["status"])

    def get_refund_status(self, refund_id, intent_id) -> RefundStatusInfo:
        self.calls.append({"method": "get_refund_status", "refund_id": refund_id, "intent_id": intent_id})
        if not self.should_succeed:
            self._fail()
        data = self.refunds.get(refund_id)
        if data is None or data["intent_id"] != intent_id:
            raise GatewayRequestError(f"Refund {refund_id} not found", status_code=404)
        return RefundStatusInfo(
            id=refund_id,
            status=data["status"],
            amount=data["amount"],
            created_at=data["created_at"],
        )
