"""Application tests for coupon issuance and deactivation."""

import pytest
from checkout.coupon.coupon import Coupon, find_coupon
from checkout.coupon.issuance import DeactivateCoupon, IssueCoupon
from protean import current_domain
from protean.exceptions import ObjectNotFoundError, ValidationError


def _issue(code="SAVE20"):
    return current_domain.process(
        IssueCoupon(code=code, kind="fixed", value=20, min_purchase=200),
        asynchronous=False,
    )


class TestIssueCoupon:
    def test_issue_returns_code(self):
        assert _issue("save20") == "SAVE20"

    def test_issued_coupon_is_persisted(self):
        _issue()
        coupon = find_coupon("Save20")
        assert isinstance(coupon, Coupon)
        assert coupon.min_purchase == 200

    def test_duplicate_code_rejected(self):
        _issue()
        with pytest.raises(ValidationError):
            _issue("save20")


class TestDeactivateCoupon:
    def test_deactivate(self):
        _issue()
        current_domain.process(DeactivateCoupon(code="SAVE20"), asynchronous=False)

        assert find_coupon("SAVE20") is None
        assert find_coupon("SAVE20", active_only=False).active is False

    def test_deactivate_unknown(self):
        with pytest.raises(ObjectNotFoundError):
            current_domain.process(DeactivateCoupon(code="NOPE"), asynchronous=False)

    def test_reissue_deactivated_code_rejected(self):
        _issue()
        current_domain.process(DeactivateCoupon(code="SAVE20"), asynchronous=False)
        with pytest.raises(ValidationError):
            _issue()
