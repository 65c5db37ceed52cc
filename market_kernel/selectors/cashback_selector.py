"""Read side of the cashback ledger: summary, history and expiring batches."""

from datetime import timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from market_kernel.db.base import not_deleted
from market_kernel.db.types import ZERO, round_money
from market_kernel.domain.dtos import CashbackEntry, CashbackSummary, Page
from market_kernel.models.cashback import (
    CashbackAccountModel,
    CashbackTransactionModel,
    CashbackTransactionType,
)
from market_kernel.selectors.base import BaseSelector

_EARNED = CashbackTransactionType.EARNED.value


class CashbackSelector(BaseSelector):

    def get_summary(self, customer_id: UUID, expiring_window_days: int = 7) -> CashbackSummary:
        """
        Balance and lifetime totals for a customer.

        ``available_balance`` is computed live from the batches, not read
        from the cached account balance.
        """
        now = self.clock.now()
        account = self.session.execute(
            select(CashbackAccountModel).where(
                CashbackAccountModel.customer_id == customer_id,
                not_deleted(CashbackAccountModel),
            )
        ).scalar_one_or_none()

        available = self._remaining_between(customer_id, lower=now)
        expiring = self._remaining_between(
            customer_id, lower=now, upper=now + timedelta(days=expiring_window_days)
        )
        if account is None:
            return CashbackSummary(
                customer_id=customer_id,
                available_balance=available,
                expiring_soon=expiring,
                expiring_window_days=expiring_window_days,
            )
        return CashbackSummary(
            customer_id=customer_id,
            available_balance=available,
            total_earned=round_money(account.total_earned),
            total_used=round_money(account.total_used),
            total_expired=round_money(account.total_expired),
            expiring_soon=expiring,
            expiring_window_days=expiring_window_days,
        )

    def get_history(self, customer_id: UUID, page: int = 1, page_size: int = 20) -> Page:
        """All ledger entries for the customer, newest first."""
        offset, limit = self._page_bounds(page, page_size)
        base = select(CashbackTransactionModel).where(
            CashbackTransactionModel.customer_id == customer_id,
            not_deleted(CashbackTransactionModel),
        )
        total = self.session.execute(
            select(func.count()).select_from(base.subquery())
        ).scalar_one()
        created_at = CashbackTransactionModel.__table__.c.created_at
        rows = self.session.execute(
            base.order_by(created_at.desc(), CashbackTransactionModel.id)
            .offset(offset)
            .limit(limit)
        ).scalars()
        return Page(
            items=tuple(row.to_entry() for row in rows),
            page=page,
            page_size=page_size,
            total_count=total,
        )

    def get_expiring(self, customer_id: UUID, days: int = 7) -> tuple[CashbackEntry, ...]:
        """Unexpired batches with remaining value that expire within ``days``."""
        now = self.clock.now()
        rows = self.session.execute(
            select(CashbackTransactionModel)
            .where(
                CashbackTransactionModel.customer_id == customer_id,
                CashbackTransactionModel.transaction_type == _EARNED,
                CashbackTransactionModel.remaining_amount > 0,
                CashbackTransactionModel.expires_at > now,
                CashbackTransactionModel.expires_at <= now + timedelta(days=days),
                not_deleted(CashbackTransactionModel),
            )
            .order_by(CashbackTransactionModel.expires_at)
        ).scalars()
        return tuple(row.to_entry() for row in rows)

    def _remaining_between(self, customer_id: UUID, lower, upper=None) -> Decimal:
        stmt = select(
            func.coalesce(func.sum(CashbackTransactionModel.remaining_amount), 0)
        ).where(
            CashbackTransactionModel.customer_id == customer_id,
            CashbackTransactionModel.transaction_type == _EARNED,
            CashbackTransactionModel.remaining_amount > 0,
            CashbackTransactionModel.expires_at > lower,
            not_deleted(CashbackTransactionModel),
        )
        if upper is not None:
            stmt = stmt.where(CashbackTransactionModel.expires_at <= upper)
        total = self.session.execute(stmt).scalar_one()
        return round_money(Decimal(total)) if total else ZERO
