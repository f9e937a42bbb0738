"""Coupon issuance — commands and handler."""

from protean import handle
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import Float, String
from protean.utils.globals import current_domain

from checkout.coupon.coupon import Coupon, find_coupon
from checkout.domain import checkout


@checkout.command(part_of="Coupon")
class IssueCoupon:
    """Issue a new coupon code."""

    code = String(required=True, max_length=50)
    kind = String(required=True, max_length=20)  # percentage, fixed
    value = Float(required=True)
    min_purchase = Float()


@checkout.command(part_of="Coupon")
class DeactivateCoupon:
    code = String(required=True, max_length=50)


@checkout.command_handler(part_of=Coupon)
class CouponIssuanceHandler:
    @handle(IssueCoupon)
    def issue_coupon(self, command):
        if find_coupon(command.code, active_only=False) is not None:
            raise ValidationError({"code": [f"Coupon {command.code.upper()} already exists"]})

        coupon = Coupon.issue(
            code=command.code,
            kind=command.kind,
            value=command.value,
            min_purchase=command.min_purchase,
        )
        current_domain.repository_for(Coupon).add(coupon)
        return coupon.code

    @handle(DeactivateCoupon)
    def deactivate_coupon(self, command):
        coupon = find_coupon(command.code, active_only=False)
        if coupon is None:
            raise ObjectNotFoundError({"code": [f"Coupon {command.code} does not exist"]})

        coupon.deactivate()
        current_domain.repository_for(Coupon).add(coupon)
