from checkout.shared.exceptions import InvalidAmount
from checkout.shared.money import to_decimal


def ensure_positive_amount(amount) -> None:
    """Reject refund amounts that can never be valid, before any provider call."""
    if amount is None or to_decimal(amount) <= 0:
        raise InvalidAmount({"amount": ["Refund amount must be greater than 0"]})
