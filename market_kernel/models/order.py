"""
Module: market_kernel.models.order
Responsibility: ORM models for the order aggregate: orders, their line
    items, applied discounts, discount reasons, and the counter backing
    order numbers.
Architecture position: Kernel > Models.

Invariants enforced:
    - order_number is unique.
    - final_price >= 0 (CHECK) alongside the domain-level ComputeFinalPrice
      validation that runs before every flush of a price change.
    - Line items are written once at creation.

Audit relevance:
    OrderDiscountModel rows record who applied each discount and when.
    Removed discounts are soft-deleted, never dropped.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from market_kernel.db.base import AuditInfo, Base, audit_columns
from market_kernel.db.types import ZERO, round_money
from market_kernel.domain.discount_policy import DiscountReasonInfo
from market_kernel.domain.dtos import (
    OrderDiscountSummary,
    OrderItemSummary,
    OrderSummary,
)
from market_kernel.domain.order_lifecycle import OrderStatus


class OrderModel(Base):
    """A customer order and its monetary state."""

    __tablename__ = "orders"

    __table_args__ = (
        CheckConstraint("final_price >= 0", name="ck_orders_final_price_non_negative"),
        Index("idx_orders_customer", "customer_id"),
        Index("idx_orders_seller", "seller_id"),
        Index("idx_orders_status", "status"),
    )

    order_number: Mapped[str] = mapped_column(String(40), unique=True)
    customer_id: Mapped[UUID] = mapped_column()
    seller_id: Mapped[UUID | None] = mapped_column(nullable=True)
    status: Mapped[str] = mapped_column(String(30), default=OrderStatus.PENDING.value)

    payment_method: Mapped[str] = mapped_column(String(20))
    delivery_type: Mapped[str] = mapped_column(String(20))
    delivery_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    from_cart: Mapped[bool] = mapped_column(Boolean, default=False)

    total_price: Mapped[Decimal] = mapped_column()
    discount_applied: Mapped[Decimal] = mapped_column(default=ZERO)
    cashback_used: Mapped[Decimal] = mapped_column(default=ZERO)
    delivery_fee: Mapped[Decimal] = mapped_column(default=ZERO)
    final_price: Mapped[Decimal] = mapped_column()
    cashback_earned: Mapped[Decimal] = mapped_column(default=ZERO)

    confirmed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    shipped_at: Mapped[datetime | None] = mapped_column(nullable=True)
    delivered_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    audit: Mapped[AuditInfo] = audit_columns()

    items: Mapped[list["OrderItemModel"]] = relationship(
        back_populates="order",
        order_by="OrderItemModel.line_number",
        lazy="selectin",
    )
    discounts: Mapped[list["OrderDiscountModel"]] = relationship(
        back_populates="order",
        order_by="OrderDiscountModel.applied_at",
        lazy="selectin",
    )

    @property
    def order_status(self) -> OrderStatus:
        return OrderStatus(self.status)

    def active_discounts(self) -> list["OrderDiscountModel"]:
        return [d for d in self.discounts if not d.audit.is_deleted]

    def to_summary(self) -> OrderSummary:
        return OrderSummary(
            order_id=self.id,
            order_number=self.order_number,
            customer_id=self.customer_id,
            seller_id=self.seller_id,
            status=self.status,
            payment_method=self.payment_method,
            delivery_type=self.delivery_type,
            total_price=round_money(self.total_price),
            discount_applied=round_money(self.discount_applied),
            cashback_used=round_money(self.cashback_used),
            delivery_fee=round_money(self.delivery_fee),
            final_price=round_money(self.final_price),
            cashback_earned=round_money(self.cashback_earned),
            created_at=self.audit.created_at,
            items=tuple(item.to_summary() for item in self.items),
            discounts=tuple(d.to_summary() for d in self.active_discounts()),
            delivery_address=self.delivery_address,
            notes=self.notes,
            confirmed_at=self.confirmed_at,
            shipped_at=self.shipped_at,
            delivered_at=self.delivered_at,
            cancelled_at=self.cancelled_at,
            cancellation_reason=self.cancellation_reason,
        )

    def __repr__(self) -> str:
        return (
            f"<OrderModel {self.order_number} customer={self.customer_id} "
            f"status={self.status} final={self.final_price}>"
        )


class OrderItemModel(Base):
    """A line of an order, priced at creation time."""

    __tablename__ = "order_items"

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
        Index("idx_order_items_order", "order_id"),
    )

    order_id: Mapped[UUID] = mapped_column(ForeignKey("orders.id"))
    line_number: Mapped[int] = mapped_column(Integer)
    product_id: Mapped[UUID] = mapped_column()
    product_name: Mapped[str] = mapped_column(String(200))
    quantity: Mapped[int] = mapped_column(Integer)
    unit_price: Mapped[Decimal] = mapped_column()
    discount_amount: Mapped[Decimal] = mapped_column(default=ZERO)

    audit: Mapped[AuditInfo] = audit_columns()

    order: Mapped[OrderModel] = relationship(back_populates="items")

    @property
    def subtotal(self) -> Decimal:
        return round_money(self.unit_price * self.quantity)

    @property
    def total(self) -> Decimal:
        return self.subtotal - round_money(self.discount_amount)

    def to_summary(self) -> OrderItemSummary:
        return OrderItemSummary(
            product_id=self.product_id,
            product_name=self.product_name,
            quantity=self.quantity,
            unit_price=round_money(self.unit_price),
            discount_amount=round_money(self.discount_amount),
            subtotal=self.subtotal,
            total=self.total,
        )


class OrderDiscountModel(Base):
    """A discount applied to an order through the authorization gate."""

    __tablename__ = "order_discounts"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_order_discounts_amount_positive"),
        Index("idx_order_discounts_order", "order_id"),
    )

    order_id: Mapped[UUID] = mapped_column(ForeignKey("orders.id"))
    amount: Mapped[Decimal] = mapped_column()
    discount_reason_id: Mapped[UUID | None] = mapped_column(nullable=True)
    applied_by_actor_id: Mapped[UUID] = mapped_column()
    applied_by_role: Mapped[str] = mapped_column(String(20))
    applied_at: Mapped[datetime] = mapped_column()

    audit: Mapped[AuditInfo] = audit_columns()

    order: Mapped[OrderModel] = relationship(back_populates="discounts")

    def to_summary(self) -> OrderDiscountSummary:
        return OrderDiscountSummary(
            discount_id=self.id,
            amount=round_money(self.amount),
            discount_reason_id=self.discount_reason_id,
            applied_by_actor_id=self.applied_by_actor_id,
            applied_at=self.applied_at,
        )


class DiscountReasonModel(Base):
    """A named reason staff select when discounting, with optional limits."""

    __tablename__ = "discount_reasons"

    name: Mapped[str] = mapped_column(String(100))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    max_discount_percentage: Mapped[Decimal | None] = mapped_column(nullable=True)
    max_discount_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    is_seller_only: Mapped[bool] = mapped_column(Boolean, default=False)

    audit: Mapped[AuditInfo] = audit_columns()

    def to_info(self) -> DiscountReasonInfo:
        return DiscountReasonInfo(
            reason_id=self.id,
            name=self.name,
            is_active=self.is_active,
            max_discount_percentage=self.max_discount_percentage,
            max_discount_amount=self.max_discount_amount,
            is_seller_only=self.is_seller_only,
        )


class SequenceCounterModel(Base):
    """Named counter incremented in place to number orders per day."""

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(60), unique=True)
    current_value: Mapped[int] = mapped_column(BigInteger, default=0)
