"""
Unit tests for money helpers.

Verifies:
- ROUND_HALF_UP at the minor unit
- Float constructor prohibition
- Percentage computation for cashback
"""

from decimal import Decimal

import pytest

from market_kernel.db.types import (
    MONEY_DECIMAL_PLACES,
    money_from_str,
    percentage_of,
    round_money,
    to_money,
)


class TestRoundMoney:

    def test_half_rounds_up(self):
        assert round_money(Decimal("10.005")) == Decimal("10.01")
        assert round_money(Decimal("10.015")) == Decimal("10.02")

    def test_below_half_rounds_down(self):
        assert round_money(Decimal("10.004")) == Decimal("10.00")

    def test_negative_half_rounds_away_from_zero(self):
        assert round_money(Decimal("-0.005")) == Decimal("-0.01")

    def test_default_places(self):
        assert MONEY_DECIMAL_PLACES == 2
        assert round_money(Decimal("1")).as_tuple().exponent == -2

    def test_custom_places(self):
        assert round_money(Decimal("1.23456"), 4) == Decimal("1.2346")


class TestToMoney:

    def test_from_string(self):
        assert to_money("100.50") == Decimal("100.50")

    def test_from_int(self):
        assert to_money(7) == Decimal("7.00")

    def test_float_rejected(self):
        with pytest.raises(TypeError):
            to_money(0.1)

    def test_bool_rejected(self):
        with pytest.raises(TypeError):
            to_money(True)

    def test_invalid_string_rejected(self):
        with pytest.raises(ValueError):
            money_from_str("ten dollars")

    def test_non_finite_rejected(self):
        with pytest.raises(ValueError):
            to_money("Infinity")


class TestPercentageOf:

    def test_two_percent(self):
        assert percentage_of(Decimal("100000"), Decimal("2")) == Decimal("2000.00")

    def test_half_cent_rounds_up(self):
        # 2% of 0.25 = 0.005
        assert percentage_of(Decimal("0.25"), Decimal("2")) == Decimal("0.01")

    def test_small_amount_rounds_to_zero(self):
        assert percentage_of(Decimal("0.20"), Decimal("2")) == Decimal("0.00")
