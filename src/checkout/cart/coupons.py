"""CouponPolicy — validates a coupon code against a cart and holds it.

Errors are raised as ValidationError subclasses:

- CouponNotFound: no active coupon matches the code (case-insensitive)
- CouponBelowMinimum: the cart subtotal is below the coupon's minimum
  purchase; the message carries the threshold
"""

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from checkout.cart.cart import ShoppingCart
from checkout.coupon.coupon import find_coupon
from checkout.domain import checkout
from checkout.pricing.engine import subtotal_of
from checkout.shared.money import format_money, to_decimal


class CouponError(ValidationError):
    pass


class CouponNotFound(CouponError):
    pass


class CouponBelowMinimum(CouponError):
    pass


class CouponPolicy:
    def lookup(self, code):
        coupon = find_coupon(code)
        if coupon is None:
            raise CouponNotFound({"coupon_code": [f"Coupon {code} is invalid or has expired"]})
        return coupon

    def check_minimum(self, coupon, lines) -> None:
        if coupon.min_purchase is None:
            return
        subtotal = subtotal_of(lines)
        if subtotal < to_decimal(coupon.min_purchase):
            raise CouponBelowMinimum(
                {
                    "coupon_code": [
                        f"Minimum purchase of {format_money(coupon.min_purchase)} required to use {coupon.code}"
                    ]
                }
            )

    def resolve(self, code, lines):
        """Return the coupon valid for ``lines``, or None when no code is given."""
        if not code:
            return None
        coupon = self.lookup(code)
        self.check_minimum(coupon, lines)
        return coupon

    def apply(self, code, cart):
        """Validate ``code`` for ``cart`` and replace the cart's coupon slot."""
        coupon = self.resolve(code, cart.lines or [])
        if coupon is None:
            raise CouponNotFound({"coupon_code": ["Coupon code is required"]})
        cart.set_coupon(coupon.code)
        return coupon

    def remove(self, cart) -> None:
        cart.clear_coupon()


@checkout.command(part_of="ShoppingCart")
class ApplyCouponToCart:
    cart_id = Identifier(required=True)
    coupon_code = String(required=True, max_length=50)


@checkout.command(part_of="ShoppingCart")
class RemoveCouponFromCart:
    cart_id = Identifier(required=True)


@checkout.command_handler(part_of=ShoppingCart)
class CartCouponHandler:
    @handle(ApplyCouponToCart)
    def apply_coupon(self, command):
        repo = current_domain.repository_for(ShoppingCart)
        cart = repo.get(command.cart_id)
        coupon = CouponPolicy().apply(command.coupon_code, cart)
        repo.add(cart)
        return coupon.code

    @handle(RemoveCouponFromCart)
    def remove_coupon(self, command):
        repo = current_domain.repository_for(ShoppingCart)
        cart = repo.get(command.cart_id)
        CouponPolicy().remove(cart)
        repo.add(cart)
