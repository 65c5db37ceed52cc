"""Selectors for the marketplace kernel (read side)."""

from market_kernel.selectors.cashback_selector import CashbackSelector
from market_kernel.selectors.order_selector import OrderSelector

__all__ = [
    "CashbackSelector",
    "OrderSelector",
]
