"""Domain events for the ShoppingCart aggregate."""

from protean.fields import Boolean, Identifier, Integer, String, Text

from checkout.domain import checkout


@checkout.event(part_of="ShoppingCart")
class CartItemAdded:
    """A product was added to the cart (or its quantity increased)."""

    __version__ = 1

    cart_id = Identifier(required=True)
    product_id = Identifier(required=True)
    quantity = Integer(required=True)
    clamped = Boolean(default=False)


@checkout.event(part_of="ShoppingCart")
class CartQuantityUpdated:
    __version__ = 1

    cart_id = Identifier(required=True)
    product_id = Identifier(required=True)
    previous_quantity = Integer(required=True)
    new_quantity = Integer(required=True)
    clamped = Boolean(default=False)


@checkout.event(part_of="ShoppingCart")
class CartItemRemoved:
    __version__ = 1

    cart_id = Identifier(required=True)
    product_id = Identifier(required=True)


@checkout.event(part_of="ShoppingCart")
class CartCouponApplied:
    """A coupon was applied, replacing any coupon applied before it."""

    __version__ = 1

    cart_id = Identifier(required=True)
    coupon_code = String(required=True)
    replaced_code = String()


@checkout.event(part_of="ShoppingCart")
class CartCouponRemoved:
    __version__ = 1

    cart_id = Identifier(required=True)
    coupon_code = String(required=True)


@checkout.event(part_of="ShoppingCart")
class CartCleared:
    __version__ = 1

    cart_id = Identifier(required=True)


@checkout.event(part_of="ShoppingCart")
class CartCheckedOut:
    """The cart's contents were frozen into an order and the cart emptied."""

    __version__ = 1

    cart_id = Identifier(required=True)
    order_id = Identifier(required=True)
    lines = Text(required=True)  # JSON snapshot handed to the order
    request_id = String(max_length=255)
