"""PricingEngine — turns cart lines and an optional coupon into a PriceQuote.

Pure and deterministic: no repository access, no clock, no settings lookup
unless the caller omits the policy. Everything is computed in Decimal and
only the grand total is rounded (2 places, half-up). The reported discount
is derived from the rounded total so that

    total == subtotal + shipping - discount

holds exactly for every quote handed to callers.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from checkout.shared.money import round_money, to_decimal

ZERO = Decimal("0")
HUNDRED = Decimal("100")


class CouponKind(Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


@dataclass(frozen=True)
class PricingPolicy:
    """Shipping rules applied to every quote."""

    shipping_fee: Decimal = Decimal("15.00")
    free_shipping_threshold: Decimal = Decimal("500.00")

    @classmethod
    def from_settings(cls, settings) -> "PricingPolicy":
        return cls(
            shipping_fee=round_money(settings.shipping_fee),
            free_shipping_threshold=to_decimal(settings.free_shipping_threshold),
        )


@dataclass(frozen=True)
class PriceQuote:
    subtotal: Decimal
    discount: Decimal
    shipping: Decimal
    total: Decimal

    def as_dict(self) -> dict[str, float]:
        return {
            "subtotal": float(self.subtotal),
            "discount": float(self.discount),
            "shipping": float(self.shipping),
            "total": float(self.total),
        }


def subtotal_of(lines) -> Decimal:
    """Sum of unit_price * quantity over objects or dicts describing lines."""
    subtotal = ZERO
    for line in lines:
        if isinstance(line, dict):
            unit_price, quantity = line["unit_price"], line["quantity"]
        else:
            unit_price, quantity = line.unit_price, line.quantity
        subtotal += to_decimal(unit_price) * int(quantity)
    return subtotal


def discount_for(subtotal: Decimal, coupon) -> Decimal:
    """Unrounded discount for a coupon, capped at the subtotal."""
    if coupon is None or subtotal <= ZERO:
        return ZERO

    kind = CouponKind(coupon.kind)
    value = to_decimal(coupon.value)
    if kind == CouponKind.PERCENTAGE:
        discount = subtotal * value / HUNDRED
    else:
        discount = value
    return min(discount, subtotal)


def shipping_for(subtotal: Decimal, policy: PricingPolicy) -> Decimal:
    if subtotal <= ZERO or subtotal >= policy.free_shipping_threshold:
        return ZERO
    return round_money(policy.shipping_fee)


def quote(lines, coupon=None, policy: PricingPolicy | None = None) -> PriceQuote:
    """Price a set of cart lines with an optional coupon.

    ``coupon`` is any object exposing ``kind`` and ``value`` (a Coupon
    aggregate or a snapshot of one). Minimum-purchase rules are enforced by
    CouponPolicy when the coupon is applied, not here.
    """
    if policy is None:
        from checkout.config import get_settings

        policy = PricingPolicy.from_settings(get_settings())

    subtotal = subtotal_of(lines)
    raw_discount = discount_for(subtotal, coupon)
    shipping = shipping_for(subtotal, policy)

    total = round_money(subtotal + shipping - raw_discount)
    if total < ZERO:
        total = ZERO

    return PriceQuote(
        subtotal=subtotal,
        discount=subtotal + shipping - total,
        shipping=shipping,
        total=total,
    )
