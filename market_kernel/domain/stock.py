"""
Stock -- pure stock-level rules for the inventory ledger.

Invariants enforced:
    - stock_quantity >= 0.
    - stock_quantity == 0 implies OUT_OF_STOCK; a positive quantity on an
      OUT_OF_STOCK product returns it to ACTIVE.  INACTIVE is kept while
      stock stays positive.
"""

from dataclasses import dataclass
from enum import Enum
from uuid import UUID


class ProductStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    OUT_OF_STOCK = "out_of_stock"


class StockReason(str, Enum):
    ORDER = "order"
    CANCEL = "cancel"
    RESTOCK = "restock"
    CORRECTION = "correction"


DEFAULT_MIN_STOCK_LEVEL = 5


def derive_status(previous: ProductStatus, quantity: int) -> ProductStatus:
    if quantity == 0:
        return ProductStatus.OUT_OF_STOCK
    if previous == ProductStatus.OUT_OF_STOCK:
        return ProductStatus.ACTIVE
    return previous


@dataclass(frozen=True)
class StockLevel:
    """Stock position of a product after an adjustment or check."""

    product_id: UUID
    quantity: int
    min_stock_level: int
    status: ProductStatus

    @property
    def is_out_of_stock(self) -> bool:
        return self.quantity == 0

    @property
    def is_low_stock(self) -> bool:
        return 0 < self.quantity <= self.min_stock_level
