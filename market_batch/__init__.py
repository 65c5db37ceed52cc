"""
market_batch -- Background jobs for the marketplace kernel.

Currently a single in-process scheduler that runs cashback expiry on a
fixed interval.

Architecture:
    market_batch/ is a top-level package.  Nothing in market_kernel
    imports from market_batch.
"""

from market_batch.expiry_scheduler import CashbackExpiryScheduler

__all__ = ["CashbackExpiryScheduler"]
