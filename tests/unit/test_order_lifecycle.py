"""
Unit tests for the order state machine and ComputeFinalPrice.

Every (from, to) pair is checked against the transition table, so a new
transition cannot slip in without updating these tests.
"""

from decimal import Decimal

import pytest

from market_kernel.domain.order_lifecycle import (
    ORDER_WORKFLOW,
    LinePricing,
    OrderStatus,
    can_cancel,
    compute_final_price,
    order_total,
    transition,
)

S = OrderStatus

ALLOWED = {
    (S.PENDING, S.CONFIRMED),
    (S.PENDING, S.CANCELLED),
    (S.CONFIRMED, S.PREPARING),
    (S.CONFIRMED, S.CANCELLED),
    (S.PREPARING, S.READY_FOR_PICKUP),
    (S.PREPARING, S.SHIPPED),
    (S.PREPARING, S.CANCELLED),
    (S.READY_FOR_PICKUP, S.DELIVERED),
    (S.SHIPPED, S.DELIVERED),
}


class TestTransitionTable:

    @pytest.mark.parametrize("current", list(S))
    @pytest.mark.parametrize("requested", list(S))
    def test_only_table_transitions_allowed(self, current, requested):
        result = transition(current, requested)
        assert result.is_success == ((current, requested) in ALLOWED)

    def test_rejection_names_both_states(self):
        result = transition(S.SHIPPED, S.CANCELLED)

        assert result.code == "INVALID_STATE_TRANSITION"
        assert result.error.current_status == "shipped"
        assert result.error.requested_status == "cancelled"

    @pytest.mark.parametrize("terminal", [S.DELIVERED, S.CANCELLED])
    def test_terminal_states_have_no_exits(self, terminal):
        assert terminal in ORDER_WORKFLOW.terminal_states
        assert ORDER_WORKFLOW.allowed_from(terminal) == ()

    def test_cancel_only_before_dispatch(self):
        assert [s for s in S if can_cancel(s)] == [S.PENDING, S.CONFIRMED, S.PREPARING]

    def test_only_delivery_earns_cashback(self):
        earning = [t for t in ORDER_WORKFLOW.transitions if t.earns_cashback]
        assert {t.to_state for t in earning} == {S.DELIVERED}

    def test_cancellations_restore_inventory(self):
        for t in ORDER_WORKFLOW.transitions:
            assert t.restores_inventory == (t.to_state == S.CANCELLED)

    def test_timestamp_fields(self):
        assert transition(S.PENDING, S.CONFIRMED).value.timestamp_field == "confirmed_at"
        assert transition(S.PREPARING, S.SHIPPED).value.timestamp_field == "shipped_at"
        assert transition(S.SHIPPED, S.DELIVERED).value.timestamp_field == "delivered_at"
        assert transition(S.CONFIRMED, S.PREPARING).value.timestamp_field is None


class TestComputeFinalPrice:

    def test_worked_example(self):
        result = compute_final_price(
            Decimal("100000"), Decimal("10000"), Decimal("5000"), Decimal("15000")
        )

        assert result.is_success
        assert result.value.final_price == Decimal("100000.00")

    def test_defaults_to_total(self):
        assert compute_final_price(Decimal("42.10")).value.final_price == Decimal("42.10")

    def test_zero_final_price_allowed(self):
        result = compute_final_price(Decimal("100"), Decimal("60"), Decimal("40"))
        assert result.value.final_price == Decimal("0.00")

    def test_negative_final_price_rejected(self):
        result = compute_final_price(Decimal("100"), Decimal("80"), Decimal("40"))

        assert result.code == "VALIDATION_ERROR"
        assert "final_price" in result.error.field_errors

    def test_cashback_above_total_rejected(self):
        result = compute_final_price(Decimal("100"), cashback_used=Decimal("100.01"),
                                     delivery_fee=Decimal("50"))
        assert result.error.field_errors["cashback_used"] == "must not exceed the order total"

    def test_negative_components_reported_per_field(self):
        result = compute_final_price(
            Decimal("100"), Decimal("-1"), Decimal("0"), Decimal("-2")
        )
        assert set(result.error.field_errors) == {"discount_applied", "delivery_fee"}


class TestLinePricing:

    def test_subtotal_and_total(self):
        line = LinePricing(quantity=3, unit_price=Decimal("19.99"), discount_amount=Decimal("5"))
        assert line.subtotal == Decimal("59.97")
        assert line.total == Decimal("54.97")

    def test_order_total_sums_lines(self):
        lines = [
            LinePricing(quantity=2, unit_price=Decimal("10.00")),
            LinePricing(quantity=1, unit_price=Decimal("0.015")),
        ]
        assert order_total(lines) == Decimal("20.02")
