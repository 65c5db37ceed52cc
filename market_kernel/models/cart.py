"""Cart items a customer has staged for checkout.  Cleared by soft delete."""

from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer
from sqlalchemy.orm import Mapped, mapped_column

from market_kernel.db.base import AuditInfo, Base, audit_columns


class CartItemModel(Base):

    __tablename__ = "cart_items"

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_cart_items_quantity_positive"),
        Index("idx_cart_items_customer", "customer_id"),
    )

    customer_id: Mapped[UUID] = mapped_column()
    product_id: Mapped[UUID] = mapped_column(ForeignKey("products.id"))
    quantity: Mapped[int] = mapped_column(Integer)

    audit: Mapped[AuditInfo] = audit_columns()

    def __repr__(self) -> str:
        return f"<CartItemModel customer={self.customer_id} product={self.product_id} qty={self.quantity}>"
