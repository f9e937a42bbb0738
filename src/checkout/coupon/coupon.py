"""Coupon aggregate (CQRS) — discount rules identified by a code.

Coupons are immutable once issued: kind, value and minimum purchase never
change. The only allowed mutation is deactivation, after which the code no
longer matches when a customer applies it.
"""

from datetime import UTC, datetime

from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, String
from protean.utils.globals import current_domain

from checkout.coupon.events import CouponDeactivated, CouponIssued
from checkout.domain import checkout
from checkout.pricing.engine import CouponKind


def normalize_code(code: str) -> str:
    """Codes are matched case-insensitively; they are stored upper-cased."""
    return (code or "").strip().upper()


@checkout.aggregate
class Coupon:
    code = String(required=True, max_length=50)
    kind = String(required=True, choices=CouponKind)
    value = Float(required=True, min_value=0.0)
    min_purchase = Float(min_value=0.0)
    active = Boolean(default=True)
    issued_at = DateTime()
    deactivated_at = DateTime()

    @classmethod
    def issue(cls, code, kind, value, min_purchase=None):
        """Issue a new coupon after validating its discount rule."""
        normalized = normalize_code(code)
        if not normalized:
            raise ValidationError({"code": ["Coupon code is required"]})

        try:
            coupon_kind = CouponKind(kind)
        except ValueError:
            raise ValidationError({"kind": [f"Unknown coupon kind: {kind}"]}) from None
        if value is None or value <= 0:
            raise ValidationError({"value": ["Coupon value must be greater than zero"]})
        if coupon_kind == CouponKind.PERCENTAGE and value > 100:
            raise ValidationError({"value": ["Percentage coupons cannot exceed 100"]})

        now = datetime.now(UTC)
        coupon = cls(
            code=normalized,
            kind=coupon_kind.value,
            value=value,
            min_purchase=min_purchase,
            active=True,
            issued_at=now,
        )
        coupon.raise_(
            CouponIssued(
                coupon_id=str(coupon.id),
                code=normalized,
                kind=coupon_kind.value,
                value=value,
                min_purchase=min_purchase,
                issued_at=now,
            )
        )
        return coupon

    def deactivate(self) -> None:
        if not self.active:
            raise ValidationError({"active": [f"Coupon {self.code} is already inactive"]})

        now = datetime.now(UTC)
        self.active = False
        self.deactivated_at = now
        self.raise_(
            CouponDeactivated(
                coupon_id=str(self.id),
                code=self.code,
                deactivated_at=now,
            )
        )


def find_coupon(code, active_only=True):
    """Return the coupon matching ``code`` case-insensitively, or None."""
    criteria = {"code": normalize_code(code)}
    if active_only:
        criteria["active"] = True
    matches = current_domain.repository_for(Coupon)._dao.query.filter(**criteria).all().items
    return matches[0] if matches else None
