"""
Module: market_kernel.models.cashback
Responsibility: ORM models owned by the cashback ledger: ledger entries
    (Earned batches, Used allocations, Expired conversions) and the
    per-customer account row holding the cached balance.
Architecture position: Kernel > Models.

Invariants enforced:
    - All amounts are stored positive; ``transaction_type`` gives the sign.
    - 0 <= remaining_amount <= amount (CHECK).  remaining_amount is only
      meaningful for EARNED rows and is 0 on USED/EXPIRED rows.
    - One account row per customer (UNIQUE customer_id).  The account row
      is locked FOR UPDATE by every balance-changing ledger operation.

Audit relevance:
    USED and EXPIRED rows reference their source batch, so every unit of
    cashback can be traced from earn to spend or expiry.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from market_kernel.db.base import AuditInfo, Base, audit_columns
from market_kernel.db.types import round_money
from market_kernel.domain.cashback_allocation import BatchSnapshot, UsedEntry
from market_kernel.domain.dtos import CashbackEntry


class CashbackTransactionType(str, Enum):
    EARNED = "earned"
    USED = "used"
    EXPIRED = "expired"


class CashbackTransactionModel(Base):
    """A single cashback ledger entry."""

    __tablename__ = "cashback_transactions"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_cashback_amount_positive"),
        CheckConstraint(
            "remaining_amount >= 0 AND remaining_amount <= amount",
            name="ck_cashback_remaining_bounds",
        ),
        Index("idx_cashback_customer_type", "customer_id", "transaction_type"),
        Index("idx_cashback_customer_expiry", "customer_id", "expires_at"),
        Index("idx_cashback_order", "order_id"),
        Index("idx_cashback_source", "source_batch_id"),
    )

    customer_id: Mapped[UUID] = mapped_column()
    order_id: Mapped[UUID | None] = mapped_column(nullable=True)
    transaction_type: Mapped[str] = mapped_column(String(20))
    amount: Mapped[Decimal] = mapped_column()
    remaining_amount: Mapped[Decimal] = mapped_column()
    earned_at: Mapped[datetime] = mapped_column()
    expires_at: Mapped[datetime] = mapped_column()

    source_batch_id: Mapped[UUID | None] = mapped_column(nullable=True)
    is_refund: Mapped[bool] = mapped_column(Boolean, default=False)
    reversed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    audit: Mapped[AuditInfo] = audit_columns()

    @property
    def type(self) -> CashbackTransactionType:
        return CashbackTransactionType(self.transaction_type)

    def to_snapshot(self) -> BatchSnapshot:
        return BatchSnapshot(
            batch_id=self.id,
            amount=self.amount,
            remaining_amount=self.remaining_amount,
            earned_at=self.earned_at,
            expires_at=self.expires_at,
        )

    def to_entry(self) -> CashbackEntry:
        return CashbackEntry(
            entry_id=self.id,
            transaction_type=self.transaction_type,
            amount=round_money(self.amount),
            remaining_amount=round_money(self.remaining_amount),
            order_id=self.order_id,
            source_batch_id=self.source_batch_id,
            earned_at=self.earned_at,
            expires_at=self.expires_at,
            is_refund=self.is_refund,
            description=self.description,
        )

    def to_used_entry(self) -> UsedEntry:
        return UsedEntry(
            entry_id=self.id,
            source_batch_id=self.source_batch_id,
            amount=self.amount,
        )

    def __repr__(self) -> str:
        return (
            f"<CashbackTransactionModel {self.id} {self.transaction_type} "
            f"amount={self.amount} remaining={self.remaining_amount} "
            f"expires_at={self.expires_at}>"
        )


class CashbackAccountModel(Base):
    """
    Per-customer cashback account.

    ``balance`` caches the sum of remaining amounts over unexpired EARNED
    batches and is recomputed from the entries on every ledger mutation.
    """

    __tablename__ = "cashback_accounts"

    customer_id: Mapped[UUID] = mapped_column(unique=True)
    balance: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    total_earned: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    total_used: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    total_expired: Mapped[Decimal] = mapped_column(default=Decimal("0"))

    audit: Mapped[AuditInfo] = audit_columns()

    def __repr__(self) -> str:
        return f"<CashbackAccountModel customer={self.customer_id} balance={self.balance}>"
