"""
Module: market_kernel.models.product
Responsibility: ORM models owned by the inventory ledger: products and the
    append-only stock movement journal.
Architecture position: Kernel > Models.  Imports db/base.py and domain
    enums only.

Invariants enforced:
    - stock_quantity >= 0 (CHECK constraint backing the ledger's
      compare-and-decrement update).
    - Stock movements are inserted once and never updated.

Audit relevance:
    Every stock change is traceable to a StockMovementModel row naming the
    reason and, for order-driven changes, the order.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from market_kernel.db.base import AuditInfo, Base, audit_columns
from market_kernel.domain.stock import DEFAULT_MIN_STOCK_LEVEL, ProductStatus, StockLevel


class ProductModel(Base):
    """
    A sellable product and its stock position.

    Guarantees:
        - stock_quantity and status change only through InventoryLedger.
    """

    __tablename__ = "products"

    __table_args__ = (
        CheckConstraint("stock_quantity >= 0", name="ck_products_stock_non_negative"),
        Index("idx_products_status", "status"),
    )

    name: Mapped[str] = mapped_column(String(200))
    price: Mapped[Decimal] = mapped_column()
    stock_quantity: Mapped[int] = mapped_column(Integer, default=0)
    min_stock_level: Mapped[int] = mapped_column(Integer, default=DEFAULT_MIN_STOCK_LEVEL)
    status: Mapped[str] = mapped_column(String(30), default=ProductStatus.ACTIVE.value)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    audit: Mapped[AuditInfo] = audit_columns()

    @property
    def is_low_stock(self) -> bool:
        return 0 < self.stock_quantity <= self.min_stock_level

    @property
    def is_out_of_stock(self) -> bool:
        return self.stock_quantity == 0

    def to_stock_level(self) -> StockLevel:
        return StockLevel(
            product_id=self.id,
            quantity=self.stock_quantity,
            min_stock_level=self.min_stock_level,
            status=ProductStatus(self.status),
        )

    def __repr__(self) -> str:
        return f"<ProductModel {self.id} {self.name!r} stock={self.stock_quantity} status={self.status}>"


class StockMovementModel(Base):
    """One applied stock adjustment."""

    __tablename__ = "stock_movements"

    __table_args__ = (
        Index("idx_stock_movement_product", "product_id"),
        Index("idx_stock_movement_order", "order_id"),
    )

    product_id: Mapped[UUID] = mapped_column(ForeignKey("products.id"))
    delta: Mapped[int] = mapped_column(Integer)
    quantity_after: Mapped[int] = mapped_column(Integer)
    reason: Mapped[str] = mapped_column(String(30))
    order_id: Mapped[UUID | None] = mapped_column(nullable=True)
    actor_id: Mapped[UUID | None] = mapped_column(nullable=True)

    audit: Mapped[AuditInfo] = audit_columns()

    def __repr__(self) -> str:
        return (
            f"<StockMovementModel {self.id} product={self.product_id} "
            f"delta={self.delta} after={self.quantity_after} reason={self.reason}>"
        )
