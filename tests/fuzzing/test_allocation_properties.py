"""
Property-based tests for the pure pricing and cashback allocation rules.

Properties checked:
- plan_spend allocates exactly the requested amount, earliest expiry first,
  never draws a batch below zero, and fails without allocating when the
  balance is short
- plan_expiry only touches expired batches and is idempotent once applied
- compute_final_price matches total - discount - cashback + fee and never
  returns a negative price
- discount authorization never approves more than the role cap
"""

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

from hypothesis import assume, given, settings
from hypothesis import strategies as st

from market_kernel.db.types import ZERO, round_money
from market_kernel.domain.actors import ActorRole
from market_kernel.domain.cashback_allocation import (
    BatchSnapshot,
    available_balance,
    plan_expiry,
    plan_spend,
)
from market_kernel.domain.discount_policy import authorize, role_cap
from market_kernel.domain.order_lifecycle import compute_final_price

NOW = datetime(2025, 6, 1, tzinfo=timezone.utc)
CUSTOMER = uuid4()

money = st.decimals(
    min_value=Decimal("0.01"), max_value=Decimal("100000"), places=2,
    allow_nan=False, allow_infinity=False,
)
non_negative_money = st.decimals(
    min_value=Decimal("0"), max_value=Decimal("100000"), places=2,
    allow_nan=False, allow_infinity=False,
)


@st.composite
def batches(draw, min_size=0, max_size=8):
    """Earned batches, some expired, some partly spent."""
    count = draw(st.integers(min_value=min_size, max_value=max_size))
    result = []
    for _ in range(count):
        amount = draw(money)
        remaining = draw(
            st.decimals(min_value=Decimal("0"), max_value=amount, places=2,
                        allow_nan=False, allow_infinity=False)
        )
        expires_in = draw(st.integers(min_value=-40, max_value=40))
        result.append(
            BatchSnapshot(
                batch_id=uuid4(),
                amount=amount,
                remaining_amount=remaining,
                earned_at=NOW + timedelta(days=expires_in - 30),
                expires_at=NOW + timedelta(days=expires_in),
            )
        )
    return result


class TestSpendProperties:

    @given(data=st.data(), snapshot=batches(min_size=1))
    @settings(max_examples=200)
    def test_allocation_totals_requested_amount(self, data, snapshot):
        balance = available_balance(snapshot, NOW)
        assume(balance > ZERO)
        amount = data.draw(
            st.decimals(min_value=Decimal("0.01"), max_value=balance, places=2,
                        allow_nan=False, allow_infinity=False)
        )

        plan = plan_spend(CUSTOMER, snapshot, amount, NOW).unwrap()

        assert plan.total == amount
        by_id = {b.batch_id: b for b in snapshot}
        for allocation in plan.allocations:
            source = by_id[allocation.batch_id]
            assert source.is_available(NOW)
            assert ZERO < allocation.amount <= source.remaining_amount
            assert allocation.remaining_after == source.remaining_amount - allocation.amount
            assert allocation.remaining_after >= ZERO

    @given(data=st.data(), snapshot=batches(min_size=2))
    @settings(max_examples=200)
    def test_earlier_batches_drained_before_later_ones(self, data, snapshot):
        balance = available_balance(snapshot, NOW)
        assume(balance > ZERO)
        amount = data.draw(
            st.decimals(min_value=Decimal("0.01"), max_value=balance, places=2,
                        allow_nan=False, allow_infinity=False)
        )

        allocations = plan_spend(CUSTOMER, snapshot, amount, NOW).unwrap().allocations

        by_id = {b.batch_id: b for b in snapshot}
        expiries = [by_id[a.batch_id].expires_at for a in allocations]
        assert expiries == sorted(expiries)
        # Every allocation but the last empties its batch.
        assert all(a.remaining_after == ZERO for a in allocations[:-1])

    @given(snapshot=batches(), extra=money)
    def test_overspend_fails_without_allocating(self, snapshot, extra):
        balance = available_balance(snapshot, NOW)

        result = plan_spend(CUSTOMER, snapshot, balance + extra, NOW)

        assert result.code == "INSUFFICIENT_CASHBACK"
        assert result.error.available == balance


class TestExpiryProperties:

    @given(snapshot=batches())
    def test_expiry_touches_only_expired_batches(self, snapshot):
        plan = plan_expiry(snapshot, NOW)

        by_id = {b.batch_id: b for b in snapshot}
        for allocation in plan:
            source = by_id[allocation.batch_id]
            assert source.is_expired(NOW)
            assert allocation.amount == source.remaining_amount
            assert allocation.remaining_after == ZERO

    @given(snapshot=batches())
    def test_second_run_expires_nothing(self, snapshot):
        zeroed = {a.batch_id for a in plan_expiry(snapshot, NOW)}
        after = [
            replace(b, remaining_amount=ZERO) if b.batch_id in zeroed else b
            for b in snapshot
        ]

        assert plan_expiry(after, NOW) == ()
        assert available_balance(after, NOW) == available_balance(snapshot, NOW)


class TestPricingProperties:

    @given(total=non_negative_money, discount=non_negative_money,
           cashback=non_negative_money, fee=non_negative_money)
    def test_final_price_identity(self, total, discount, cashback, fee):
        result = compute_final_price(total, discount, cashback, fee)

        expected = round_money(total - discount - cashback + fee)
        if cashback > total or expected < ZERO:
            assert result.code == "VALIDATION_ERROR"
        else:
            assert result.value.final_price == expected
            assert result.value.final_price >= ZERO

    @given(
        role=st.sampled_from(list(ActorRole)),
        total=non_negative_money,
        requested=money,
        already=non_negative_money,
    )
    def test_authorized_discount_within_role_cap(self, role, total, requested, already):
        result = authorize(role, requested, total, already_applied=already)

        if result.is_success:
            assert role != ActorRole.CUSTOMER
            assert already + result.value.approved_amount <= role_cap(role, total)
        elif role == ActorRole.CUSTOMER:
            assert result.code == "FORBIDDEN"
        else:
            assert result.code == "EXCESSIVE_DISCOUNT"
            assert result.error.max_allowed_amount == max(role_cap(role, total) - already, ZERO)
