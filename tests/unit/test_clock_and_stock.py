"""Unit tests for the injectable clock and pure stock rules."""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from market_kernel.domain.clock import DeterministicClock, SystemClock
from market_kernel.domain.stock import ProductStatus, StockLevel, derive_status


class TestDeterministicClock:

    def test_stable_until_advanced(self):
        clock = DeterministicClock()
        assert clock.now() == clock.now()

    def test_advance(self):
        clock = DeterministicClock(datetime(2025, 1, 1, tzinfo=timezone.utc))
        assert clock.advance(days=31) == datetime(2025, 2, 1, tzinfo=timezone.utc)

    def test_cannot_move_backwards(self):
        with pytest.raises(ValueError):
            DeterministicClock().advance(seconds=-1)

    def test_naive_start_is_tagged_utc(self):
        clock = DeterministicClock(datetime(2025, 6, 1, 8, 0))
        assert clock.now().tzinfo == timezone.utc

    def test_system_clock_is_aware(self):
        now = SystemClock().now()
        assert now.tzinfo is not None
        assert abs(datetime.now(timezone.utc) - now) < timedelta(seconds=5)


class TestDeriveStatus:

    def test_zero_is_out_of_stock(self):
        assert derive_status(ProductStatus.ACTIVE, 0) == ProductStatus.OUT_OF_STOCK

    def test_restock_reactivates(self):
        assert derive_status(ProductStatus.OUT_OF_STOCK, 3) == ProductStatus.ACTIVE

    def test_inactive_kept_while_stocked(self):
        assert derive_status(ProductStatus.INACTIVE, 3) == ProductStatus.INACTIVE


class TestStockLevel:

    def test_low_stock_threshold_inclusive(self):
        level = StockLevel(uuid4(), quantity=5, min_stock_level=5, status=ProductStatus.ACTIVE)
        assert level.is_low_stock
        assert not level.is_out_of_stock

    def test_empty_is_out_not_low(self):
        level = StockLevel(uuid4(), quantity=0, min_stock_level=5, status=ProductStatus.OUT_OF_STOCK)
        assert level.is_out_of_stock
        assert not level.is_low_stock
