import pytest
from checkout.cart.items import AddToCart
from checkout.cart.management import CreateCart
from checkout.coupon.issuance import IssueCoupon
from checkout.order.reconciler import OrderReconciler
from protean import current_domain

LINES = [{"product_id": "prod-001", "unit_price": 125.0, "quantity": 2}]


@pytest.fixture()
def reconciler():
    return OrderReconciler()


@pytest.fixture()
def save20():
    return current_domain.process(
        IssueCoupon(code="SAVE20", kind="fixed", value=20, min_purchase=200),
        asynchronous=False,
    )


@pytest.fixture()
def placed(reconciler):
    """An order for ¥265 (¥250 + ¥15 shipping) awaiting payment."""
    return reconciler.place_order(customer_id="cust-001", lines=LINES, request_id="req-001")


@pytest.fixture()
def cart_id():
    cart_id = current_domain.process(CreateCart(customer_id="cust-001"), asynchronous=False)
    current_domain.process(
        AddToCart(cart_id=cart_id, product_id="prod-001", unit_price=125.0, quantity=2, stock_limit=10),
        asynchronous=False,
    )
    return cart_id
