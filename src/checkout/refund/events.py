from protean.fields import DateTime, Float, Identifier, String

from checkout.domain import checkout


@checkout.event(part_of="RefundRequest")
class RefundRequested:
    __version__ = 1

    refund_id = Identifier(required=True)
    order_id = Identifier(required=True)
    payment_intent_id = String(required=True, max_length=255)
    amount = Float(required=True)
    reason = String(required=True, max_length=500)
    requested_by = String(required=True, max_length=255)
    requested_at = DateTime(required=True)


@checkout.event(part_of="RefundRequest")
class RefundCompleted:
    """The provider accepted the refund."""

    __version__ = 1

    refund_id = Identifier(required=True)
    order_id = Identifier(required=True)
    gateway_refund_id = String(required=True, max_length=255)
    gateway_status = String(max_length=50)
    amount = Float(required=True)
    approved_by = String(required=True, max_length=255)
    completed_at = DateTime(required=True)


@checkout.event(part_of="RefundRequest")
class RefundRejected:
    __version__ = 1

    refund_id = Identifier(required=True)
    order_id = Identifier(required=True)
    rejected_by = String(required=True, max_length=255)
    reason = String(required=True, max_length=500)
    rejected_at = DateTime(required=True)
