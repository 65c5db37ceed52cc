"""
Tests for CashbackLedger.

Verifies:
- Earn creates a batch expiring after the configured validity
- Spend is FIFO by expiry and all-or-nothing
- Expire is idempotent and keeps the cached balance in step
- Reverse keeps the source expiry and refunds expired sources
"""

from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from market_kernel.config import FulfillmentConfig
from market_kernel.domain.clock import DeterministicClock
from market_kernel.models.cashback import CashbackTransactionModel
from market_kernel.services.cashback_ledger import CashbackLedger


@pytest.fixture
def ledger(session, deterministic_clock, config):
    return CashbackLedger(session, deterministic_clock, config)


@pytest.fixture
def customer():
    return uuid4()


def entries(session, customer_id, transaction_type):
    return session.execute(
        select(CashbackTransactionModel)
        .where(
            CashbackTransactionModel.customer_id == customer_id,
            CashbackTransactionModel.transaction_type == transaction_type,
        )
        .order_by(CashbackTransactionModel.expires_at)
    ).scalars().all()


def assert_cache_matches(ledger, customer_id):
    assert ledger.get_cached_balance(customer_id) == ledger.get_available_balance(customer_id)


class TestEarn:

    def test_earn_fixed_amount(self, ledger, customer, deterministic_clock):
        entry = ledger.earn(customer, uuid4(), Decimal("150.00")).unwrap()

        assert entry.amount == Decimal("150.00")
        assert entry.remaining_amount == Decimal("150.00")
        assert entry.expires_at == deterministic_clock.now() + timedelta(days=30)
        assert ledger.get_available_balance(customer) == Decimal("150.00")
        assert_cache_matches(ledger, customer)

    def test_earn_percentage_of_final_price(self, ledger, customer):
        entry = ledger.earn(customer, uuid4(), Decimal("100000"), Decimal("2")).unwrap()
        assert entry.amount == Decimal("2000.00")

    def test_validity_is_configurable(self, session, deterministic_clock, customer):
        ledger = CashbackLedger(session, deterministic_clock, FulfillmentConfig(cashback_validity_days=7))
        entry = ledger.earn(customer, None, Decimal("1")).unwrap()
        assert entry.expires_at - entry.earned_at == timedelta(days=7)

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-10")])
    def test_non_positive_rejected(self, ledger, customer, amount, session):
        assert ledger.earn(customer, None, amount).code == "VALIDATION_ERROR"
        assert entries(session, customer, "earned") == []

    def test_percentage_rounding_to_zero_rejected(self, ledger, customer):
        assert ledger.earn(customer, None, Decimal("0.20"), Decimal("2")).code == "VALIDATION_ERROR"


class TestSpend:

    @pytest.fixture
    def two_batches(self, session, config, customer):
        """B1=1000 expiring in 5 days, B2=500 expiring in 20 days."""
        clock = DeterministicClock()
        start = clock.now()
        clock.set_time(start - timedelta(days=25))
        ledger = CashbackLedger(session, clock, config)
        ledger.earn(customer, None, Decimal("1000"))
        clock.advance(days=15)
        ledger.earn(customer, None, Decimal("500"))
        clock.advance(days=10)
        assert clock.now() == start
        return ledger

    def test_fifo_by_expiry(self, two_batches, session, customer):
        order_id = uuid4()
        plan = two_batches.spend(customer, order_id, Decimal("1200")).unwrap()

        b1, b2 = entries(session, customer, "earned")
        assert b1.remaining_amount == Decimal("0")
        assert b2.remaining_amount == Decimal("300")
        assert [a.amount for a in plan.allocations] == [Decimal("1000"), Decimal("200")]

        used = entries(session, customer, "used")
        assert {(u.source_batch_id, u.amount) for u in used} == {
            (b1.id, Decimal("1000")),
            (b2.id, Decimal("200")),
        }
        assert all(u.order_id == order_id for u in used)
        assert all(u.expires_at == src.expires_at for u, src in zip(used, (b1, b2)))
        assert two_batches.get_available_balance(customer) == Decimal("300.00")
        assert_cache_matches(two_batches, customer)

    def test_insufficient_allocates_nothing(self, two_batches, session, customer):
        result = two_batches.spend(customer, uuid4(), Decimal("1500.01"))

        assert result.code == "INSUFFICIENT_CASHBACK"
        assert result.error.available == Decimal("1500")
        assert entries(session, customer, "used") == []
        assert [b.remaining_amount for b in entries(session, customer, "earned")] == [
            Decimal("1000"),
            Decimal("500"),
        ]

    def test_customer_without_account(self, ledger):
        assert ledger.spend(uuid4(), uuid4(), Decimal("1")).code == "INSUFFICIENT_CASHBACK"


class TestExpire:

    def test_expire_is_idempotent(self, ledger, customer, session, deterministic_clock):
        ledger.earn(customer, None, Decimal("300"))
        assert ledger.get_cached_balance(customer) == Decimal("300.00")
        deterministic_clock.advance(days=31)

        first = ledger.expire().unwrap()

        assert first.expired_count == 1
        assert first.expired_amount == Decimal("300.00")
        assert first.customer_ids == (customer,)
        (expired,) = entries(session, customer, "expired")
        assert expired.amount == Decimal("300")
        assert entries(session, customer, "earned")[0].remaining_amount == Decimal("0")
        assert ledger.get_cached_balance(customer) == Decimal("0.00")

        second = ledger.expire().unwrap()

        assert second.expired_count == 0
        assert len(entries(session, customer, "expired")) == 1

    def test_unexpired_batches_untouched(self, ledger, customer, deterministic_clock):
        ledger.earn(customer, None, Decimal("50"))
        deterministic_clock.advance(days=29)
        assert ledger.expire().unwrap().expired_count == 0
        assert ledger.get_available_balance(customer) == Decimal("50.00")

    def test_expiry_boundary_matches_spend_filter(self, ledger, customer, deterministic_clock):
        ledger.earn(customer, None, Decimal("10"))
        deterministic_clock.advance(days=30)

        assert ledger.get_available_balance(customer) == Decimal("0.00")
        assert ledger.spend(customer, None, Decimal("1")).code == "INSUFFICIENT_CASHBACK"
        assert ledger.expire().unwrap().expired_amount == Decimal("10.00")

    def test_scoped_to_customer(self, ledger, deterministic_clock):
        a, b = uuid4(), uuid4()
        ledger.earn(a, None, Decimal("5"))
        ledger.earn(b, None, Decimal("7"))
        deterministic_clock.advance(days=31)

        summary = ledger.expire(customer_id=a).unwrap()

        assert summary.customer_ids == (a,)
        assert ledger.expire().unwrap().customer_ids == (b,)


class TestReverse:

    def test_restores_source_batch_without_extending_expiry(
        self, ledger, customer, session, deterministic_clock
    ):
        batch = ledger.earn(customer, None, Decimal("100")).unwrap()
        order_id = uuid4()
        deterministic_clock.advance(days=10)
        ledger.spend(customer, order_id, Decimal("60"))
        deterministic_clock.advance(days=5)

        plan = ledger.reverse(order_id).unwrap()

        (earned,) = entries(session, customer, "earned")
        assert plan.total == Decimal("60")
        assert plan.refund_amount == Decimal("0")
        assert earned.remaining_amount == Decimal("100")
        assert earned.expires_at == batch.expires_at
        assert all(u.reversed_at is not None for u in entries(session, customer, "used"))
        assert_cache_matches(ledger, customer)

    def test_expired_source_becomes_refund_batch(
        self, ledger, customer, session, deterministic_clock
    ):
        ledger.earn(customer, None, Decimal("100"))
        order_id = uuid4()
        ledger.spend(customer, order_id, Decimal("100"))
        deterministic_clock.advance(days=31)

        plan = ledger.reverse(order_id).unwrap()

        assert plan.refund_amount == Decimal("100")
        refund = [b for b in entries(session, customer, "earned") if b.is_refund]
        assert len(refund) == 1
        assert refund[0].remaining_amount == Decimal("100")
        assert refund[0].expires_at == deterministic_clock.now() + timedelta(days=30)
        assert ledger.get_available_balance(customer) == Decimal("100.00")

    def test_reverse_twice_is_noop(self, ledger, customer, session):
        ledger.earn(customer, None, Decimal("40"))
        order_id = uuid4()
        ledger.spend(customer, order_id, Decimal("40"))
        ledger.reverse(order_id)

        again = ledger.reverse(order_id).unwrap()

        assert again.total == Decimal("0")
        assert entries(session, customer, "earned")[0].remaining_amount == Decimal("40")

    def test_order_without_spend(self, ledger):
        assert ledger.reverse(uuid4()).unwrap().restorations == ()
