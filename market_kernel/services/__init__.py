"""Services for the marketplace kernel (write side)."""

from market_kernel.services.cashback_ledger import CashbackLedger
from market_kernel.services.inventory_ledger import Availability, InventoryLedger
from market_kernel.services.notifications import (
    InMemoryNotificationEmitter,
    LoggingNotificationEmitter,
    NotificationType,
)
from market_kernel.services.order_fulfillment import OrderFulfillmentOrchestrator

__all__ = [
    "Availability",
    "CashbackLedger",
    "InMemoryNotificationEmitter",
    "InventoryLedger",
    "LoggingNotificationEmitter",
    "NotificationType",
    "OrderFulfillmentOrchestrator",
]
