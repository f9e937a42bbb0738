"""Shopping Cart aggregate (CQRS) — the customer's working set before checkout.

The cart holds priced lines with the stock limit known when each line was
touched. Quantities above stock are clamped to the limit, never rejected.
Malformed input (non-positive quantity, negative price) is rejected here, at
the mutation boundary, so the pricing engine can assume well-formed lines.

At most one coupon code is held; applying a new one replaces the previous.
"""

import json
from datetime import UTC, datetime

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, HasMany, Identifier, Integer, String

from checkout.cart.events import (
    CartCheckedOut,
    CartCleared,
    CartCouponApplied,
    CartCouponRemoved,
    CartItemAdded,
    CartItemRemoved,
    CartQuantityUpdated,
)
from checkout.domain import checkout


@checkout.entity(part_of="ShoppingCart")
class CartLine:
    product_id = Identifier(required=True)
    unit_price = Float(required=True, min_value=0.0)
    quantity = Integer(required=True, min_value=1)
    stock_limit = Integer(required=True, min_value=1)
    added_at = DateTime()


@checkout.aggregate
class ShoppingCart:
    customer_id = Identifier()  # Nullable for guest carts
    session_id = String(max_length=255)
    lines = HasMany(CartLine)
    coupon_code = String(max_length=50)
    checkout_request_id = String(max_length=255)
    checked_out_order_id = Identifier()
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def line_quantities_must_be_within_stock(self):
        for line in self.lines or []:
            if not 0 < line.quantity <= line.stock_limit:
                raise ValidationError(
                    {"quantity": [f"Quantity for {line.product_id} must be between 1 and {line.stock_limit}"]}
                )

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(cls, customer_id=None, session_id=None):
        now = datetime.now(UTC)
        return cls(
            customer_id=customer_id,
            session_id=session_id,
            created_at=now,
            updated_at=now,
        )

    # -------------------------------------------------------------------
    # Lines
    # -------------------------------------------------------------------
    def line_for(self, product_id):
        return next((line for line in self.lines or [] if str(line.product_id) == str(product_id)), None)

    @staticmethod
    def _clamp(quantity, stock_limit):
        return min(quantity, stock_limit), quantity > stock_limit

    @staticmethod
    def _resize(line, quantity, stock_limit):
        # Order the writes so the line never exceeds its stock limit in between
        if stock_limit >= line.stock_limit:
            line.stock_limit = stock_limit
            line.quantity = quantity
        else:
            line.quantity = quantity
            line.stock_limit = stock_limit

    def add_item(self, product_id, unit_price, quantity, stock_limit):
        """Add a product, or increase the quantity of a line already present."""
        if quantity is None or quantity < 1:
            raise ValidationError({"quantity": ["Quantity must be at least 1"]})
        if unit_price is None or unit_price < 0:
            raise ValidationError({"unit_price": ["Unit price cannot be negative"]})
        if stock_limit is None or stock_limit < 1:
            raise ValidationError({"stock_limit": [f"Product {product_id} is out of stock"]})

        now = datetime.now(UTC)
        existing = self.line_for(product_id)
        if existing:
            new_quantity, clamped = self._clamp(existing.quantity + quantity, stock_limit)
            existing.unit_price = unit_price
            self._resize(existing, new_quantity, stock_limit)
        else:
            new_quantity, clamped = self._clamp(quantity, stock_limit)
            self.add_lines(
                CartLine(
                    product_id=product_id,
                    unit_price=unit_price,
                    quantity=new_quantity,
                    stock_limit=stock_limit,
                    added_at=now,
                )
            )

        self.updated_at = now
        self.raise_(
            CartItemAdded(
                cart_id=str(self.id),
                product_id=str(product_id),
                quantity=new_quantity,
                clamped=clamped,
            )
        )

    def update_quantity(self, product_id, quantity):
        if quantity is None or quantity < 1:
            raise ValidationError({"quantity": ["Quantity must be at least 1; remove the item instead"]})

        line = self.line_for(product_id)
        if line is None:
            raise ValidationError({"product_id": ["Item not found in cart"]})

        previous_quantity = line.quantity
        line.quantity, clamped = self._clamp(quantity, line.stock_limit)
        self.updated_at = datetime.now(UTC)

        self.raise_(
            CartQuantityUpdated(
                cart_id=str(self.id),
                product_id=str(product_id),
                previous_quantity=previous_quantity,
                new_quantity=line.quantity,
                clamped=clamped,
            )
        )

    def remove_item(self, product_id):
        line = self.line_for(product_id)
        if line is None:
            raise ValidationError({"product_id": ["Item not found in cart"]})

        self.remove_lines(line)
        self.updated_at = datetime.now(UTC)
        self.raise_(CartItemRemoved(cart_id=str(self.id), product_id=str(product_id)))

    # -------------------------------------------------------------------
    # Coupon slot
    # -------------------------------------------------------------------
    def set_coupon(self, coupon_code):
        """Hold ``coupon_code``; callers validate it through CouponPolicy first."""
        replaced = self.coupon_code
        self.coupon_code = coupon_code
        self.updated_at = datetime.now(UTC)
        self.raise_(
            CartCouponApplied(
                cart_id=str(self.id),
                coupon_code=coupon_code,
                replaced_code=replaced,
            )
        )

    def clear_coupon(self):
        """Drop the coupon if one is held. Idempotent."""
        if not self.coupon_code:
            return

        removed = self.coupon_code
        self.coupon_code = None
        self.updated_at = datetime.now(UTC)
        self.raise_(CartCouponRemoved(cart_id=str(self.id), coupon_code=removed))

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------
    def snapshot(self) -> list[dict]:
        """Frozen copy of the lines, safe to hand over to an order."""
        return [
            {
                "product_id": str(line.product_id),
                "unit_price": line.unit_price,
                "quantity": line.quantity,
                "stock_limit": line.stock_limit,
            }
            for line in self.lines or []
        ]

    def _empty(self):
        for line in list(self.lines or []):
            self.remove_lines(line)
        self.coupon_code = None
        self.updated_at = datetime.now(UTC)

    def clear(self):
        self._empty()
        self.raise_(CartCleared(cart_id=str(self.id)))

    def placed_as(self, request_id):
        """Order id an earlier checkout under ``request_id`` produced, if any."""
        if request_id and self.checkout_request_id == request_id:
            return self.checked_out_order_id
        return None

    def check_out(self, order_id, lines_snapshot, request_id=None):
        """Empty the cart after its contents became ``order_id``."""
        if not lines_snapshot:
            raise ValidationError({"cart": ["Cannot check out an empty cart"]})

        self._empty()
        self.checkout_request_id = request_id
        self.checked_out_order_id = str(order_id)
        self.raise_(
            CartCheckedOut(
                cart_id=str(self.id),
                order_id=str(order_id),
                lines=json.dumps(lines_snapshot),
                request_id=request_id,
            )
        )
