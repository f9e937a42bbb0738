"""Cart to order conversion — command and handler."""

from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from checkout.cart.cart import ShoppingCart
from checkout.domain import checkout


@checkout.command(part_of="ShoppingCart")
class ConvertCartToOrder:
    """Empty a cart whose contents were placed as ``order_id``."""

    cart_id = Identifier(required=True)
    order_id = Identifier(required=True)
    request_id = String(max_length=255)


@checkout.command_handler(part_of=ShoppingCart)
class ConvertCartHandler:
    @handle(ConvertCartToOrder)
    def convert_to_order(self, command):
        repo = current_domain.repository_for(ShoppingCart)
        cart = repo.get(command.cart_id)
        if cart.placed_as(command.request_id) is not None:
            return
        cart.check_out(command.order_id, cart.snapshot(), request_id=command.request_id)
        repo.add(cart)
