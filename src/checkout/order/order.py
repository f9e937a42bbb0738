"""Order aggregate (Event Sourced) — reconciles a local order with an
externally processed payment.

State Machine:
    PENDING → PAID → PROCESSING → SHIPPED → DELIVERED
    PENDING → FAILED | CANCELLED
    FAILED / provider CANCELLED → PENDING (manual retry, new attempt)
    PAID, PROCESSING, SHIPPED, DELIVERED → REFUNDED

Payment events (webhook deliveries and status-poll results alike) are keyed
``<intent_id>:<event_type>``. A key already processed is a no-op: no event,
no side effect. An event the order cannot accept (it already left PENDING,
or the intent belongs to a superseded attempt) is recorded as an anomaly and
never moves the order. PaymentConfirmed is therefore raised at most once.

``payment_intent_id`` is the intent created with the order and never
changes. Each retry appends a PaymentAttempt carrying its own intent; the
last attempt is the only one whose events may transition the order.
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean import apply
from protean.fields import (
    Boolean,
    DateTime,
    Float,
    HasMany,
    Identifier,
    Integer,
    String,
    Text,
    ValueObject,
)

from checkout.domain import checkout
from checkout.order.events import (
    OrderCancelled,
    OrderDelivered,
    OrderPlaced,
    OrderProcessing,
    OrderRefunded,
    OrderShipped,
    PaymentCancelled,
    PaymentConfirmed,
    PaymentEventAnomalyRecorded,
    PaymentFailed,
    PaymentRetryStarted,
)
from checkout.shared.exceptions import InvalidAmount, StateConflictError
from checkout.shared.money import to_decimal
from checkout.webhook.verifier import PAYMENT_CANCELLED, PAYMENT_FAILED, PAYMENT_SUCCEEDED


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    PENDING = "pending"
    PAID = "paid"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class AttemptStatus(Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


class PaymentMethod(Enum):
    AIRWALLEX = "airwallex"
    ALIPAY = "alipay"
    WECHAT = "wechat"
    UNIONPAY = "unionpay"
    COD = "cod"


# Methods settled through the payment processor and reconciled here
GATEWAY_PAYMENT_METHODS = {PaymentMethod.AIRWALLEX}


class ReconcileOutcome(Enum):
    APPLIED = "processed"
    DUPLICATE = "duplicate"
    ANOMALY = "anomaly"
    IGNORED = "ignored"


# State machine transition map
_VALID_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.PAID, OrderStatus.FAILED, OrderStatus.CANCELLED},
    OrderStatus.PAID: {OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.REFUNDED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.REFUNDED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED, OrderStatus.REFUNDED},
    OrderStatus.DELIVERED: {OrderStatus.REFUNDED},
    OrderStatus.FAILED: {OrderStatus.PENDING},  # Manual retry only
    OrderStatus.CANCELLED: {OrderStatus.PENDING},  # Manual retry, provider cancellations only
    OrderStatus.REFUNDED: set(),  # Terminal
}

_PAYMENT_EVENT_TARGETS = {
    PAYMENT_SUCCEEDED: OrderStatus.PAID,
    PAYMENT_FAILED: OrderStatus.FAILED,
    PAYMENT_CANCELLED: OrderStatus.CANCELLED,
}

REFUNDABLE_STATES = {
    OrderStatus.PAID,
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
}


def payment_event_key(intent_id, event_type) -> str:
    return f"{intent_id}:{event_type}"


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@checkout.value_object(part_of="Order")
class OrderPricing:
    """Amounts frozen when the order was placed. Later coupon or price
    changes never touch an existing order.
    """

    subtotal = Float(default=0.0)
    discount = Float(default=0.0)
    shipping = Float(default=0.0)
    total = Float(default=0.0)
    currency = String(max_length=3, default="CNY")


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@checkout.entity(part_of="Order")
class OrderLine:
    product_id = Identifier(required=True)
    unit_price = Float(required=True, min_value=0.0)
    quantity = Integer(required=True, min_value=1)


@checkout.entity(part_of="Order")
class PaymentAttempt:
    """One payment intent opened against the order."""

    attempt_number = Integer(required=True, min_value=1)
    intent_id = String(required=True, max_length=255)
    status = String(choices=AttemptStatus, default=AttemptStatus.PENDING.value)
    actor = String(max_length=255)
    started_at = DateTime()
    ended_at = DateTime()


# ---------------------------------------------------------------------------
# Aggregate Root (Event Sourced)
# ---------------------------------------------------------------------------
@checkout.aggregate(is_event_sourced=True)
class Order:
    customer_id = Identifier(required=True)
    status = String(choices=OrderStatus, default=OrderStatus.PENDING.value)
    lines = HasMany(OrderLine)
    pricing = ValueObject(OrderPricing)
    coupon_code = String(max_length=50)
    payment_method = String(choices=PaymentMethod, default=PaymentMethod.AIRWALLEX.value)
    payment_intent_id = String(max_length=255)
    current_intent_id = String(max_length=255)
    paid_intent_id = String(max_length=255)
    payment_attempts = HasMany(PaymentAttempt)
    processed_event_keys = Text(default="[]")  # JSON: list of "<intent>:<event_type>"
    anomalies = Text(default="[]")  # JSON: list of anomaly dicts
    requires_review = Boolean(default=False)
    retryable = Boolean(default=False)
    failure_reason = String(max_length=500)
    cancellation_reason = String(max_length=500)
    cancelled_by = String(max_length=255)
    carrier = String(max_length=100)
    tracking_number = String(max_length=255)
    refunded_amount = Float(default=0.0)
    placed_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def new(cls):
        """A blank order with its identity assigned.

        The identity is needed to open the payment intent before the order
        is placed; nothing is recorded until ``place()``.
        """
        return cls._create_new()

    def place(self, customer_id, lines, quote, currency, intent_id, coupon_code=None, payment_method=None, request_id=None):
        """Record the order with its frozen lines, pricing and first intent.

        Args:
            lines: List of dicts with product_id, unit_price, quantity.
            quote: PriceQuote for ``lines`` and the validated coupon.
        """
        self.raise_(
            OrderPlaced(
                order_id=str(self.id),
                customer_id=str(customer_id),
                lines=json.dumps(
                    [
                        {
                            "product_id": str(line["product_id"]),
                            "unit_price": float(line["unit_price"]),
                            "quantity": int(line["quantity"]),
                        }
                        for line in lines
                    ]
                ),
                subtotal=float(quote.subtotal),
                discount=float(quote.discount),
                shipping=float(quote.shipping),
                total=float(quote.total),
                currency=currency,
                coupon_code=coupon_code,
                payment_method=payment_method or PaymentMethod.AIRWALLEX.value,
                payment_intent_id=intent_id,
                request_id=request_id,
                placed_at=datetime.now(UTC),
            )
        )

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    def _assert_can_transition(self, target_status):
        current = OrderStatus(self.status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise StateConflictError({"status": [f"Cannot transition from {current.value} to {target_status.value}"]})

    def processed_keys(self) -> set[str]:
        return set(json.loads(self.processed_event_keys or "[]"))

    def _remember_key(self, key):
        keys = json.loads(self.processed_event_keys or "[]")
        if key not in keys:
            keys.append(key)
        self.processed_event_keys = json.dumps(keys)

    def anomaly_log(self) -> list[dict]:
        return json.loads(self.anomalies or "[]")

    def attempt_for(self, intent_id):
        return next((a for a in self.payment_attempts or [] if a.intent_id == intent_id), None)

    @property
    def total(self):
        return to_decimal(self.pricing.total if self.pricing else 0)

    # -------------------------------------------------------------------
    # Payment reconciliation
    # -------------------------------------------------------------------
    def apply_payment_event(self, intent_id, event_type, source="webhook", reason=None) -> ReconcileOutcome:
        """Apply a verified payment event (or poll result) at most once."""
        if event_type not in _PAYMENT_EVENT_TARGETS:
            return ReconcileOutcome.IGNORED

        key = payment_event_key(intent_id, event_type)
        if key in self.processed_keys():
            return ReconcileOutcome.DUPLICATE

        target = _PAYMENT_EVENT_TARGETS[event_type]
        try:
            if intent_id != self.current_intent_id:
                raise StateConflictError(
                    {"payment_intent_id": [f"Intent {intent_id} belongs to a superseded payment attempt"]}
                )
            self._assert_can_transition(target)
        except StateConflictError as exc:
            self._record_anomaly(intent_id, event_type, source, key, exc)
            return ReconcileOutcome.ANOMALY

        now = datetime.now(UTC)
        if target == OrderStatus.PAID:
            self.raise_(
                PaymentConfirmed(
                    order_id=str(self.id),
                    payment_intent_id=intent_id,
                    amount=self.pricing.total,
                    source=source,
                    event_key=key,
                    paid_at=now,
                )
            )
        elif target == OrderStatus.FAILED:
            self.raise_(
                PaymentFailed(
                    order_id=str(self.id),
                    payment_intent_id=intent_id,
                    reason=reason or "Payment failed at the provider",
                    source=source,
                    event_key=key,
                    failed_at=now,
                )
            )
        else:
            self.raise_(
                PaymentCancelled(
                    order_id=str(self.id),
                    payment_intent_id=intent_id,
                    source=source,
                    event_key=key,
                    cancelled_at=now,
                )
            )
        return ReconcileOutcome.APPLIED

    def _record_anomaly(self, intent_id, event_type, source, key, error):
        reason = "; ".join(message for messages in error.messages.values() for message in messages)
        self.raise_(
            PaymentEventAnomalyRecorded(
                order_id=str(self.id),
                payment_intent_id=intent_id,
                event_type=event_type,
                order_status=self.status,
                reason=reason,
                requires_review=event_type == PAYMENT_SUCCEEDED,
                source=source,
                event_key=key,
                recorded_at=datetime.now(UTC),
            )
        )

    # -------------------------------------------------------------------
    # Manual operations
    # -------------------------------------------------------------------
    def assert_retryable(self):
        """Raise unless a new payment attempt may be opened."""
        self._assert_can_transition(OrderStatus.PENDING)
        if not self.retryable:
            raise StateConflictError({"status": ["Orders cancelled by the customer cannot be retried"]})

    def retry_payment(self, intent_id, actor):
        """Open a new attempt with ``intent_id`` and return the order to pending."""
        self.assert_retryable()
        self.raise_(
            PaymentRetryStarted(
                order_id=str(self.id),
                attempt_number=len(self.payment_attempts or []) + 1,
                payment_intent_id=intent_id,
                previous_intent_id=self.current_intent_id,
                actor=actor,
                started_at=datetime.now(UTC),
            )
        )

    def cancel(self, reason, cancelled_by):
        """Customer or operator cancellation of an unpaid order."""
        if OrderStatus(self.status) != OrderStatus.PENDING:
            raise StateConflictError({"status": [f"Only pending orders can be cancelled, order is {self.status}"]})
        self.raise_(
            OrderCancelled(
                order_id=str(self.id),
                reason=reason,
                cancelled_by=cancelled_by,
                cancelled_at=datetime.now(UTC),
            )
        )

    def mark_processing(self, actor=None):
        self._assert_can_transition(OrderStatus.PROCESSING)
        self.raise_(OrderProcessing(order_id=str(self.id), actor=actor, started_at=datetime.now(UTC)))

    def record_shipment(self, carrier, tracking_number, actor=None):
        self._assert_can_transition(OrderStatus.SHIPPED)
        self.raise_(
            OrderShipped(
                order_id=str(self.id),
                carrier=carrier,
                tracking_number=tracking_number,
                actor=actor,
                shipped_at=datetime.now(UTC),
            )
        )

    def record_delivery(self, actor=None):
        self._assert_can_transition(OrderStatus.DELIVERED)
        self.raise_(OrderDelivered(order_id=str(self.id), actor=actor, delivered_at=datetime.now(UTC)))

    # -------------------------------------------------------------------
    # Refunds
    # -------------------------------------------------------------------
    def assert_refundable(self, amount):
        """Check a refund of ``amount`` could be issued against this order."""
        if amount is None or to_decimal(amount) <= 0:
            raise InvalidAmount({"amount": ["Refund amount must be greater than 0"]})
        if to_decimal(amount) > self.total:
            raise InvalidAmount({"amount": [f"Refund amount {amount} exceeds the order total {self.pricing.total}"]})
        if OrderStatus(self.status) not in REFUNDABLE_STATES:
            raise StateConflictError({"status": [f"Order in {self.status} state cannot be refunded"]})

    def record_refund(self, refund_request_id, amount, refunded_by):
        self._assert_can_transition(OrderStatus.REFUNDED)
        if to_decimal(amount) > self.total:
            raise InvalidAmount({"amount": [f"Refund amount {amount} exceeds the order total {self.pricing.total}"]})
        self.raise_(
            OrderRefunded(
                order_id=str(self.id),
                refund_request_id=str(refund_request_id),
                amount=amount,
                refunded_by=refunded_by,
                refunded_at=datetime.now(UTC),
            )
        )

    # -------------------------------------------------------------------
    # @apply methods — rebuild state during event replay
    # -------------------------------------------------------------------
    @apply
    def _on_order_placed(self, event: OrderPlaced):
        self.id = event.order_id
        self.customer_id = event.customer_id
        self.status = OrderStatus.PENDING.value
        self.placed_at = event.placed_at
        self.updated_at = event.placed_at

        lines_data = json.loads(event.lines) if isinstance(event.lines, str) else []
        self.lines = [OrderLine(**line_data) for line_data in lines_data]

        self.pricing = OrderPricing(
            subtotal=event.subtotal,
            discount=event.discount,
            shipping=event.shipping,
            total=event.total,
            currency=event.currency,
        )
        self.coupon_code = event.coupon_code
        self.payment_method = event.payment_method
        self.payment_intent_id = event.payment_intent_id
        self.current_intent_id = event.payment_intent_id
        self.payment_attempts = [
            PaymentAttempt(
                attempt_number=1,
                intent_id=event.payment_intent_id,
                status=AttemptStatus.PENDING.value,
                actor=str(event.customer_id),
                started_at=event.placed_at,
            )
        ]

    def _close_attempt(self, intent_id, status, ended_at):
        attempt = self.attempt_for(intent_id)
        if attempt:
            attempt.status = status.value
            attempt.ended_at = ended_at

    @apply
    def _on_payment_confirmed(self, event: PaymentConfirmed):
        self.status = OrderStatus.PAID.value
        self.paid_intent_id = event.payment_intent_id
        self.retryable = False
        self._close_attempt(event.payment_intent_id, AttemptStatus.SUCCEEDED, event.paid_at)
        self._remember_key(event.event_key)
        self.updated_at = event.paid_at

    @apply
    def _on_payment_failed(self, event: PaymentFailed):
        self.status = OrderStatus.FAILED.value
        self.failure_reason = event.reason
        self.retryable = True
        self._close_attempt(event.payment_intent_id, AttemptStatus.FAILED, event.failed_at)
        self._remember_key(event.event_key)
        self.updated_at = event.failed_at

    @apply
    def _on_payment_cancelled(self, event: PaymentCancelled):
        self.status = OrderStatus.CANCELLED.value
        self.cancellation_reason = "Payment cancelled at the provider"
        self.cancelled_by = "provider"
        self.retryable = True
        self._close_attempt(event.payment_intent_id, AttemptStatus.CANCELLED, event.cancelled_at)
        self._remember_key(event.event_key)
        self.updated_at = event.cancelled_at

    @apply
    def _on_anomaly_recorded(self, event: PaymentEventAnomalyRecorded):
        log = json.loads(self.anomalies or "[]")
        log.append(
            {
                "payment_intent_id": event.payment_intent_id,
                "event_type": event.event_type,
                "order_status": event.order_status,
                "reason": event.reason,
                "requires_review": bool(event.requires_review),
                "source": event.source,
                "recorded_at": event.recorded_at.isoformat() if event.recorded_at else None,
            }
        )
        self.anomalies = json.dumps(log)
        if event.requires_review:
            self.requires_review = True
        self._remember_key(event.event_key)

    @apply
    def _on_payment_retry_started(self, event: PaymentRetryStarted):
        self.status = OrderStatus.PENDING.value
        self.current_intent_id = event.payment_intent_id
        self.retryable = False
        self.failure_reason = None
        self.cancellation_reason = None
        self.cancelled_by = None
        self.add_payment_attempts(
            PaymentAttempt(
                attempt_number=event.attempt_number,
                intent_id=event.payment_intent_id,
                status=AttemptStatus.PENDING.value,
                actor=event.actor,
                started_at=event.started_at,
            )
        )
        self.updated_at = event.started_at

    @apply
    def _on_order_cancelled(self, event: OrderCancelled):
        self.status = OrderStatus.CANCELLED.value
        self.cancellation_reason = event.reason
        self.cancelled_by = event.cancelled_by
        self.retryable = False
        self.updated_at = event.cancelled_at

    @apply
    def _on_order_processing(self, event: OrderProcessing):
        self.status = OrderStatus.PROCESSING.value
        self.updated_at = event.started_at

    @apply
    def _on_order_shipped(self, event: OrderShipped):
        self.status = OrderStatus.SHIPPED.value
        self.carrier = event.carrier
        self.tracking_number = event.tracking_number
        self.updated_at = event.shipped_at

    @apply
    def _on_order_delivered(self, event: OrderDelivered):
        self.status = OrderStatus.DELIVERED.value
        self.updated_at = event.delivered_at

    @apply
    def _on_order_refunded(self, event: OrderRefunded):
        self.status = OrderStatus.REFUNDED.value
        self.refunded_amount = event.amount
        self.updated_at = event.refunded_at
