"""
CashbackLedger -- per-customer cashback batches and their consumption.

Responsibility:
    The only writer of ``cashback_transactions`` and ``cashback_accounts``.
    Earns batches, spends them FIFO by expiry, expires them, and reverses
    an order's spend on cancellation.

Architecture position:
    Kernel > Services.  Planning is delegated to the pure functions in
    ``domain.cashback_allocation``; this service loads and locks rows,
    asks for a plan, and writes the plan out.

Invariants enforced:
    - Per-customer serialization: every balance-changing operation first
      locks the customer's CashbackAccountModel row (SELECT ... FOR UPDATE)
      and then the customer's EARNED batches.  Spend and Expire therefore
      never interleave for one customer.
    - No double-spend: the balance check, allocation and writes happen
      under that lock in the caller's transaction.
    - Spend is all-or-nothing; nothing is written unless the plan covers
      the full amount.
    - The cached ``balance`` is recomputed from the entries after every
      mutation, never adjusted incrementally.
    - Reversal keeps the source batch's expiry.  If the source batch has
      expired, the amount comes back as a fresh refund batch.

Failure modes:
    - ValidationError for non-positive amounts.
    - InsufficientCashbackError when a spend exceeds the available balance.
    - NotFoundError / ConflictError from reversal planning.

Audit relevance:
    USED and EXPIRED entries reference their source batch.  Reversed USED
    entries are stamped ``reversed_at`` and never deleted.
"""

from datetime import datetime, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from market_kernel.config import FulfillmentConfig
from market_kernel.db.base import AuditInfo, not_deleted, touch
from market_kernel.db.types import ZERO, percentage_of, round_money
from market_kernel.domain.cashback_allocation import (
    ReversalPlan,
    SpendPlan,
    plan_expiry,
    plan_reversal,
    plan_spend,
)
from market_kernel.domain.clock import Clock
from market_kernel.domain.dtos import CashbackEntry, ExpiryRunSummary
from market_kernel.domain.result import Result
from market_kernel.exceptions import ValidationError
from market_kernel.logging_config import get_logger
from market_kernel.models.cashback import (
    CashbackAccountModel,
    CashbackTransactionModel,
    CashbackTransactionType,
)
from market_kernel.services.base import BaseService

logger = get_logger("services.cashback_ledger")

_EARNED = CashbackTransactionType.EARNED.value
_USED = CashbackTransactionType.USED.value
_EXPIRED = CashbackTransactionType.EXPIRED.value


class CashbackLedger(BaseService):
    """
    FIFO-by-expiry cashback ledger.

    Contract:
        All methods flush within the caller's transaction.  Mutating
        methods return a Result and leave the session unchanged on failure.
    """

    def __init__(
        self,
        session,
        clock: Clock | None = None,
        config: FulfillmentConfig | None = None,
    ):
        super().__init__(session, clock)
        self.config = config or FulfillmentConfig()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def earn(
        self,
        customer_id: UUID,
        order_id: UUID | None,
        amount: Decimal,
        percentage: Decimal | None = None,
        *,
        is_refund: bool = False,
        description: str | None = None,
    ) -> Result[CashbackEntry]:
        """
        Create an EARNED batch expiring ``cashback_validity_days`` from now.

        When ``percentage`` is given, ``amount`` is the base (the order's
        final price) and the batch holds ``percentage`` percent of it,
        rounded half-up.  Otherwise ``amount`` is the batch amount.
        """
        earned = percentage_of(amount, percentage) if percentage is not None else round_money(amount)
        if earned <= ZERO:
            return Result.fail(
                ValidationError.for_field("amount", "earned cashback must be greater than zero")
            )

        now = self.clock.now()
        account = self._lock_account(customer_id, create=True)
        batch = self._new_batch(
            customer_id,
            order_id,
            earned,
            now,
            is_refund=is_refund,
            description=description,
        )
        account.total_earned = round_money(account.total_earned + earned)
        self._refresh_balance(account, now)

        logger.info(
            "cashback_earned",
            extra={
                "customer_id": str(customer_id),
                "order_id": str(order_id) if order_id else None,
                "amount": earned,
                "expires_at": batch.expires_at,
                "is_refund": is_refund,
                "balance": account.balance,
            },
        )
        return Result.ok(batch.to_entry())

    def spend(self, customer_id: UUID, order_id: UUID | None, amount: Decimal) -> Result[SpendPlan]:
        """
        Allocate ``amount`` across the customer's batches, earliest expiry first.

        Returns:
            Result carrying the SpendPlan that was written, one USED entry
            per allocation.
        """
        now = self.clock.now()
        account = self._lock_account(customer_id, create=False)
        batches = self._locked_batches(customer_id) if account is not None else []

        planned = plan_spend(customer_id, (b.to_snapshot() for b in batches), amount, now)
        if not planned.is_success:
            logger.warning(
                "cashback_spend_rejected",
                extra={
                    "customer_id": str(customer_id),
                    "amount": amount,
                    "error_code": planned.code,
                },
            )
            return planned

        plan = planned.value
        by_id = {b.id: b for b in batches}
        for allocation in plan.allocations:
            source = by_id[allocation.batch_id]
            source.remaining_amount = allocation.remaining_after
            touch(source, now)
            self.session.add(
                CashbackTransactionModel(
                    customer_id=customer_id,
                    order_id=order_id,
                    transaction_type=_USED,
                    amount=allocation.amount,
                    remaining_amount=ZERO,
                    earned_at=source.earned_at,
                    expires_at=source.expires_at,
                    source_batch_id=source.id,
                    audit=AuditInfo.new(now),
                )
            )

        account.total_used = round_money(account.total_used + plan.total)
        self._refresh_balance(account, now)

        logger.info(
            "cashback_spent",
            extra={
                "customer_id": str(customer_id),
                "order_id": str(order_id) if order_id else None,
                "amount": plan.total,
                "batches": [str(a.batch_id) for a in plan.allocations],
                "balance": account.balance,
            },
        )
        return Result.ok(plan)

    def expire(
        self,
        now: datetime | None = None,
        customer_id: UUID | None = None,
    ) -> Result[ExpiryRunSummary]:
        """
        Convert the remaining amount of every expired batch into an EXPIRED entry.

        Idempotent: expired batches are left with remaining 0 and skipped
        on the next run.  One ``now`` cutoff is used for the whole run.
        """
        cutoff = now or self.clock.now()
        candidates = select(CashbackTransactionModel.customer_id).where(
            CashbackTransactionModel.transaction_type == _EARNED,
            CashbackTransactionModel.remaining_amount > 0,
            CashbackTransactionModel.expires_at <= cutoff,
            not_deleted(CashbackTransactionModel),
        )
        if customer_id is not None:
            candidates = candidates.where(CashbackTransactionModel.customer_id == customer_id)
        customer_ids = sorted(
            set(self.session.execute(candidates.distinct()).scalars()), key=str
        )

        expired_count = 0
        expired_amount = ZERO
        affected: list[UUID] = []
        for cid in customer_ids:
            count, amount = self._expire_customer(cid, cutoff)
            if count:
                expired_count += count
                expired_amount += amount
                affected.append(cid)

        logger.info(
            "cashback_expiry_completed",
            extra={
                "cutoff": cutoff,
                "expired_count": expired_count,
                "expired_amount": expired_amount,
                "customers_affected": len(affected),
            },
        )
        return Result.ok(
            ExpiryRunSummary(
                expired_count=expired_count,
                expired_amount=round_money(expired_amount),
                customers_affected=len(affected),
                customer_ids=tuple(affected),
            )
        )

    def reverse(self, order_id: UUID) -> Result[ReversalPlan]:
        """
        Undo every unreversed USED entry of ``order_id``.

        Amounts go back to their source batch with its original expiry.
        Amounts whose source batch has expired become one refund batch
        with a fresh expiry.  Calling reverse twice is a no-op the second
        time.
        """
        now = self.clock.now()
        used = list(
            self.session.execute(
                select(CashbackTransactionModel)
                .where(
                    CashbackTransactionModel.order_id == order_id,
                    CashbackTransactionModel.transaction_type == _USED,
                    CashbackTransactionModel.reversed_at.is_(None),
                    not_deleted(CashbackTransactionModel),
                )
                .order_by(CashbackTransactionModel.id)
            ).scalars()
        )
        if not used:
            return Result.ok(ReversalPlan(restorations=(), refund_amount=ZERO, reversed_entry_ids=()))

        customer_id = used[0].customer_id
        account = self._lock_account(customer_id, create=True)
        source_ids = {u.source_batch_id for u in used}
        sources = {
            b.id: b
            for b in self._locked_batches(customer_id, include_empty=True)
            if b.id in source_ids
        }

        planned = plan_reversal(
            (u.to_used_entry() for u in used),
            {batch_id: b.to_snapshot() for batch_id, b in sources.items()},
            now,
        )
        if not planned.is_success:
            logger.warning(
                "cashback_reversal_rejected",
                extra={"order_id": str(order_id), "error_code": planned.code},
            )
            return planned

        plan = planned.value
        for restoration in plan.restorations:
            batch = sources[restoration.batch_id]
            batch.remaining_amount = restoration.remaining_after
            touch(batch, now)
        for entry in used:
            entry.reversed_at = now
            touch(entry, now)
        if plan.refund_amount > ZERO:
            self._new_batch(
                customer_id,
                order_id,
                plan.refund_amount,
                now,
                is_refund=True,
                description="Refund of cashback from an expired batch",
            )

        account.total_used = round_money(max(account.total_used - plan.total, ZERO))
        self._refresh_balance(account, now)

        logger.info(
            "cashback_reversed",
            extra={
                "order_id": str(order_id),
                "customer_id": str(customer_id),
                "restored": [str(r.batch_id) for r in plan.restorations],
                "refund_amount": plan.refund_amount,
                "balance": account.balance,
            },
        )
        return Result.ok(plan)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_available_balance(self, customer_id: UUID, now: datetime | None = None) -> Decimal:
        """Live sum of remaining amounts over unexpired EARNED batches."""
        cutoff = now or self.clock.now()
        total = self.session.execute(
            select(func.coalesce(func.sum(CashbackTransactionModel.remaining_amount), 0)).where(
                CashbackTransactionModel.customer_id == customer_id,
                CashbackTransactionModel.transaction_type == _EARNED,
                CashbackTransactionModel.remaining_amount > 0,
                CashbackTransactionModel.expires_at > cutoff,
                not_deleted(CashbackTransactionModel),
            )
        ).scalar_one()
        return round_money(Decimal(total))

    def get_cached_balance(self, customer_id: UUID) -> Decimal:
        account = self.session.execute(
            select(CashbackAccountModel).where(
                CashbackAccountModel.customer_id == customer_id,
                not_deleted(CashbackAccountModel),
            )
        ).scalar_one_or_none()
        return ZERO if account is None else round_money(account.balance)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _expire_customer(self, customer_id: UUID, cutoff: datetime) -> tuple[int, Decimal]:
        account = self._lock_account(customer_id, create=True)
        batches = {b.id: b for b in self._locked_batches(customer_id)}
        allocations = plan_expiry((b.to_snapshot() for b in batches.values()), cutoff)

        total = ZERO
        for allocation in allocations:
            batch = batches[allocation.batch_id]
            batch.remaining_amount = ZERO
            touch(batch, cutoff)
            self.session.add(
                CashbackTransactionModel(
                    customer_id=customer_id,
                    order_id=None,
                    transaction_type=_EXPIRED,
                    amount=allocation.amount,
                    remaining_amount=ZERO,
                    earned_at=batch.earned_at,
                    expires_at=batch.expires_at,
                    source_batch_id=batch.id,
                    description="Cashback expired",
                    audit=AuditInfo.new(cutoff),
                )
            )
            total += allocation.amount

        if allocations:
            account.total_expired = round_money(account.total_expired + total)
            self._refresh_balance(account, cutoff)
            logger.info(
                "cashback_batches_expired",
                extra={
                    "customer_id": str(customer_id),
                    "batch_count": len(allocations),
                    "amount": total,
                    "balance": account.balance,
                },
            )
        return len(allocations), total

    def _lock_account(self, customer_id: UUID, *, create: bool) -> CashbackAccountModel | None:
        account = self.session.execute(
            select(CashbackAccountModel)
            .where(
                CashbackAccountModel.customer_id == customer_id,
                not_deleted(CashbackAccountModel),
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if account is None and create:
            now = self.clock.now()
            account = CashbackAccountModel(
                customer_id=customer_id,
                balance=ZERO,
                total_earned=ZERO,
                total_used=ZERO,
                total_expired=ZERO,
                audit=AuditInfo.new(now),
            )
            self.session.add(account)
            self.session.flush()
            logger.debug("cashback_account_opened", extra={"customer_id": str(customer_id)})
        return account

    def _locked_batches(
        self,
        customer_id: UUID,
        include_empty: bool = False,
    ) -> list[CashbackTransactionModel]:
        stmt = select(CashbackTransactionModel).where(
            CashbackTransactionModel.customer_id == customer_id,
            CashbackTransactionModel.transaction_type == _EARNED,
            not_deleted(CashbackTransactionModel),
        )
        if not include_empty:
            stmt = stmt.where(CashbackTransactionModel.remaining_amount > 0)
        return list(
            self.session.execute(
                stmt.order_by(CashbackTransactionModel.expires_at)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalars()
        )

    def _new_batch(
        self,
        customer_id: UUID,
        order_id: UUID | None,
        amount: Decimal,
        now: datetime,
        *,
        is_refund: bool = False,
        description: str | None = None,
    ) -> CashbackTransactionModel:
        batch = CashbackTransactionModel(
            customer_id=customer_id,
            order_id=order_id,
            transaction_type=_EARNED,
            amount=amount,
            remaining_amount=amount,
            earned_at=now,
            expires_at=now + timedelta(days=self.config.cashback_validity_days),
            is_refund=is_refund,
            description=description,
            audit=AuditInfo.new(now),
        )
        self.session.add(batch)
        return batch

    def _refresh_balance(self, account: CashbackAccountModel, now: datetime) -> None:
        self.session.flush()
        account.balance = self.get_available_balance(account.customer_id, now)
        touch(account, now)
        self.session.flush()
