"""Unit tests for role-capped discount authorization."""

from decimal import Decimal
from uuid import uuid4

import pytest

from market_kernel.domain.actors import ActorRole
from market_kernel.domain.discount_policy import DiscountReasonInfo, authorize, role_cap
from market_kernel.exceptions import ExcessiveDiscountError


TOTAL = Decimal("100000")


class TestRoleCaps:

    def test_seller_capped_at_twenty_percent(self):
        assert role_cap(ActorRole.SELLER, TOTAL) == Decimal("20000.00")

    @pytest.mark.parametrize(
        "role", [ActorRole.MANAGER, ActorRole.ADMIN, ActorRole.SUPER_ADMIN]
    )
    def test_manager_roles_capped_at_total(self, role):
        assert role_cap(role, TOTAL) == TOTAL

    def test_customer_has_no_allowance(self):
        assert role_cap(ActorRole.CUSTOMER, TOTAL) == Decimal("0")


class TestAuthorize:

    def test_seller_over_cap_reports_requested_and_max(self):
        result = authorize(ActorRole.SELLER, Decimal("25000"), TOTAL)

        assert not result.is_success
        assert result.code == "EXCESSIVE_DISCOUNT"
        assert isinstance(result.error, ExcessiveDiscountError)
        assert result.error.requested_amount == Decimal("25000")
        assert result.error.max_allowed_amount == Decimal("20000.00")

    def test_manager_same_request_accepted(self):
        result = authorize(ActorRole.MANAGER, Decimal("25000"), TOTAL)

        assert result.is_success
        assert result.value.approved_amount == Decimal("25000")
        assert result.value.max_allowed_amount == TOTAL

    def test_seller_exactly_at_cap_accepted(self):
        assert authorize(ActorRole.SELLER, Decimal("20000"), TOTAL).is_success

    def test_manager_cannot_exceed_order_total(self):
        result = authorize(ActorRole.MANAGER, Decimal("100000.01"), TOTAL)
        assert result.code == "EXCESSIVE_DISCOUNT"

    def test_customer_forbidden(self):
        result = authorize(ActorRole.CUSTOMER, Decimal("1"), TOTAL)
        assert result.code == "FORBIDDEN"

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-5")])
    def test_non_positive_amount_rejected(self, amount):
        result = authorize(ActorRole.MANAGER, amount, TOTAL)
        assert result.code == "VALIDATION_ERROR"
        assert "discount_amount" in result.error.field_errors

    def test_cap_is_cumulative(self):
        result = authorize(
            ActorRole.SELLER, Decimal("15000"), TOTAL, already_applied=Decimal("10000")
        )
        assert result.code == "EXCESSIVE_DISCOUNT"
        assert result.error.max_allowed_amount == Decimal("10000.00")

    def test_custom_seller_cap(self):
        result = authorize(ActorRole.SELLER, Decimal("15000"), TOTAL, seller_cap=Decimal("0.10"))
        assert result.error.max_allowed_amount == Decimal("10000.00")


class TestDiscountReasons:

    def _reason(self, **overrides) -> DiscountReasonInfo:
        values = {"reason_id": uuid4(), "name": "Loyalty"}
        values.update(overrides)
        return DiscountReasonInfo(**values)

    def test_reason_percentage_lowers_cap(self):
        reason = self._reason(max_discount_percentage=Decimal("5"))
        result = authorize(ActorRole.MANAGER, Decimal("6000"), TOTAL, reason=reason)
        assert result.error.max_allowed_amount == Decimal("5000.00")

    def test_reason_amount_lowers_cap(self):
        reason = self._reason(max_discount_amount=Decimal("1500"))
        result = authorize(ActorRole.SELLER, Decimal("2000"), TOTAL, reason=reason)
        assert result.error.max_allowed_amount == Decimal("1500")

    def test_reason_never_raises_role_cap(self):
        reason = self._reason(max_discount_percentage=Decimal("50"))
        result = authorize(ActorRole.SELLER, Decimal("30000"), TOTAL, reason=reason)
        assert result.error.max_allowed_amount == Decimal("20000.00")

    def test_inactive_reason_rejected(self):
        result = authorize(
            ActorRole.MANAGER, Decimal("10"), TOTAL, reason=self._reason(is_active=False)
        )
        assert result.code == "VALIDATION_ERROR"
        assert "discount_reason_id" in result.error.field_errors

    def test_seller_only_reason_forbidden_for_manager(self):
        reason = self._reason(is_seller_only=True)
        assert authorize(ActorRole.MANAGER, Decimal("10"), TOTAL, reason=reason).code == "FORBIDDEN"
        assert authorize(ActorRole.SELLER, Decimal("10"), TOTAL, reason=reason).is_success
