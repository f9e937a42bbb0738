"""Cart management — creation, clearing and pricing reads."""

from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from checkout.cart.cart import ShoppingCart
from checkout.coupon.coupon import find_coupon
from checkout.domain import checkout
from checkout.pricing.engine import quote


@checkout.command(part_of="ShoppingCart")
class CreateCart:
    """Create a cart for a registered customer or a guest session."""

    customer_id = Identifier()
    session_id = String(max_length=255)


@checkout.command(part_of="ShoppingCart")
class ClearCart:
    cart_id = Identifier(required=True)


@checkout.command_handler(part_of=ShoppingCart)
class ManageCartHandler:
    @handle(CreateCart)
    def create_cart(self, command):
        cart = ShoppingCart.create(
            customer_id=command.customer_id,
            session_id=command.session_id,
        )
        current_domain.repository_for(ShoppingCart).add(cart)
        return str(cart.id)

    @handle(ClearCart)
    def clear_cart(self, command):
        repo = current_domain.repository_for(ShoppingCart)
        cart = repo.get(command.cart_id)
        cart.clear()
        repo.add(cart)


def quote_cart(cart_id, policy=None):
    """Price the persisted cart. Recomputed on every read, never stored."""
    cart = current_domain.repository_for(ShoppingCart).get(cart_id)
    coupon = find_coupon(cart.coupon_code, active_only=False) if cart.coupon_code else None
    return cart, quote(cart.lines or [], coupon, policy)
