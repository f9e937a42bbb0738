"""Checkout bounded context — Pricing, Orders and Payment Reconciliation.

Prices carts and coupons, creates orders against an external payment
processor, reconciles them with asynchronous webhook events and status
polls, and issues operator-approved refunds.
"""

from checkout.utils.logging import get_logger
from protean.domain import Domain

checkout = Domain(name="checkout")

logger = get_logger(__name__)
