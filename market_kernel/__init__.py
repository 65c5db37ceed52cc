"""
Market Kernel - order fulfillment core for a retail marketplace.

Keeps three ledgers consistent under concurrent access:
- Inventory with compare-and-decrement stock adjustments
- Per-customer cashback batches spent FIFO by expiry
- Orders moving through a fixed lifecycle with role-capped discounts
"""

__version__ = "0.1.0"
