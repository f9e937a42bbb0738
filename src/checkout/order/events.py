"""Domain events for the Order aggregate.

The Order is event sourced: these events are the only record of its state,
replayed through @apply on load. Payment events carry the idempotency key
``<intent_id>:<event_type>`` they were applied under, so the set of
processed keys is rebuilt on replay along with everything else.
"""

from protean.fields import Boolean, DateTime, Float, Identifier, Integer, String, Text

from checkout.domain import checkout


@checkout.event(part_of="Order")
class OrderPlaced:
    """An order was created with its first payment intent."""

    __version__ = 1

    order_id = Identifier(required=True)
    customer_id = Identifier(required=True)
    lines = Text(required=True)  # JSON: list of line dicts
    subtotal = Float(required=True)
    discount = Float(required=True)
    shipping = Float(required=True)
    total = Float(required=True)
    currency = String(required=True, max_length=3)
    coupon_code = String(max_length=50)
    payment_method = String(required=True, max_length=50)
    payment_intent_id = String(required=True, max_length=255)
    request_id = String(max_length=255)
    placed_at = DateTime(required=True)


@checkout.event(part_of="Order")
class PaymentConfirmed:
    """Money was captured for the current attempt; the order is paid.

    Raised exactly once per order. Downstream confirmation effects hang off
    this event.
    """

    __version__ = 1

    order_id = Identifier(required=True)
    payment_intent_id = String(required=True, max_length=255)
    amount = Float(required=True)
    source = String(required=True, max_length=20)  # webhook, poll
    event_key = String(required=True, max_length=300)
    paid_at = DateTime(required=True)


@checkout.event(part_of="Order")
class PaymentFailed:
    __version__ = 1

    order_id = Identifier(required=True)
    payment_intent_id = String(required=True, max_length=255)
    reason = String(max_length=500)
    source = String(required=True, max_length=20)
    event_key = String(required=True, max_length=300)
    failed_at = DateTime(required=True)


@checkout.event(part_of="Order")
class PaymentCancelled:
    """The provider cancelled the current intent. The order may be retried."""

    __version__ = 1

    order_id = Identifier(required=True)
    payment_intent_id = String(required=True, max_length=255)
    source = String(required=True, max_length=20)
    event_key = String(required=True, max_length=300)
    cancelled_at = DateTime(required=True)


@checkout.event(part_of="Order")
class PaymentEventAnomalyRecorded:
    """A payment event arrived that the order could not accept.

    Either the order had already left ``pending`` or the event referred to a
    superseded intent. State is unchanged; ``requires_review`` is set when
    the event reports money captured, which needs an operator.
    """

    __version__ = 1

    order_id = Identifier(required=True)
    payment_intent_id = String(required=True, max_length=255)
    event_type = String(required=True, max_length=100)
    order_status = String(required=True, max_length=20)
    reason = String(required=True, max_length=500)
    requires_review = Boolean(default=False)
    source = String(required=True, max_length=20)
    event_key = String(required=True, max_length=300)
    recorded_at = DateTime(required=True)


@checkout.event(part_of="Order")
class PaymentRetryStarted:
    """A new payment attempt (with a new intent) was opened on the order."""

    __version__ = 1

    order_id = Identifier(required=True)
    attempt_number = Integer(required=True)
    payment_intent_id = String(required=True, max_length=255)
    previous_intent_id = String(required=True, max_length=255)
    actor = String(required=True, max_length=255)
    started_at = DateTime(required=True)


@checkout.event(part_of="Order")
class OrderCancelled:
    __version__ = 1

    order_id = Identifier(required=True)
    reason = String(required=True, max_length=500)
    cancelled_by = String(required=True, max_length=255)
    cancelled_at = DateTime(required=True)


@checkout.event(part_of="Order")
class OrderProcessing:
    __version__ = 1

    order_id = Identifier(required=True)
    actor = String(max_length=255)
    started_at = DateTime(required=True)


@checkout.event(part_of="Order")
class OrderShipped:
    __version__ = 1

    order_id = Identifier(required=True)
    carrier = String(required=True, max_length=100)
    tracking_number = String(required=True, max_length=255)
    actor = String(max_length=255)
    shipped_at = DateTime(required=True)


@checkout.event(part_of="Order")
class OrderDelivered:
    __version__ = 1

    order_id = Identifier(required=True)
    actor = String(max_length=255)
    delivered_at = DateTime(required=True)


@checkout.event(part_of="Order")
class OrderRefunded:
    """A refund completed at the provider and the order is closed out."""

    __version__ = 1

    order_id = Identifier(required=True)
    refund_request_id = Identifier(required=True)
    amount = Float(required=True)
    refunded_by = String(required=True, max_length=255)
    refunded_at = DateTime(required=True)
