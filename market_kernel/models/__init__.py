"""ORM models for the marketplace kernel."""

from market_kernel.models.cart import CartItemModel
from market_kernel.models.cashback import (
    CashbackAccountModel,
    CashbackTransactionModel,
    CashbackTransactionType,
)
from market_kernel.models.order import (
    DiscountReasonModel,
    OrderDiscountModel,
    OrderItemModel,
    OrderModel,
    SequenceCounterModel,
)
from market_kernel.models.product import ProductModel, StockMovementModel

__all__ = [
    "CartItemModel",
    "CashbackAccountModel",
    "CashbackTransactionModel",
    "CashbackTransactionType",
    "DiscountReasonModel",
    "OrderDiscountModel",
    "OrderItemModel",
    "OrderModel",
    "ProductModel",
    "SequenceCounterModel",
    "StockMovementModel",
]
