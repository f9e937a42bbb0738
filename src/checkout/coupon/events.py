"""Domain events for the Coupon aggregate."""

from protean.fields import DateTime, Float, Identifier, String

from checkout.domain import checkout


@checkout.event(part_of="Coupon")
class CouponIssued:
    """A new coupon code was issued."""

    __version__ = 1

    coupon_id = Identifier(required=True)
    code = String(required=True)
    kind = String(required=True)
    value = Float(required=True)
    min_purchase = Float()
    issued_at = DateTime(required=True)


@checkout.event(part_of="Coupon")
class CouponDeactivated:
    """A coupon was withdrawn and no longer matches at apply time."""

    __version__ = 1

    coupon_id = Identifier(required=True)
    code = String(required=True)
    deactivated_at = DateTime(required=True)
