"""
Cashback allocation -- FIFO-by-expiry planning over a customer's batches.

Responsibility:
    Pure planning for every mutation of a customer's cashback batch set:
    spend allocation, expiry and reversal.  The ledger service loads the
    batches under the customer's lock, asks this module for a plan, and
    writes the plan out only if planning succeeded.

Architecture position:
    Kernel > Domain -- pure functions over frozen snapshots, zero I/O.

Invariants enforced:
    - A batch is available iff remaining_amount > 0 and expires_at > now.
      Spend and expiry share this cutoff so a batch is never both spent and
      expired.
    - Spend consumes the earliest-expiring available batch first.  Ties
      break on earned_at, then batch id.
    - Spend is all-or-nothing: a plan covers the full amount or the call
      fails with nothing allocated.
    - 0 <= remaining_amount <= amount for every batch after any plan.
    - Reversal never extends a batch's expiry.  Amounts whose source batch
      has expired are returned as a separate refund amount.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Iterable
from uuid import UUID

from market_kernel.db.types import ZERO
from market_kernel.domain.result import Result
from market_kernel.exceptions import (
    ConflictError,
    InsufficientCashbackError,
    NotFoundError,
    ValidationError,
)


@dataclass(frozen=True)
class BatchSnapshot:
    """An Earned batch as seen when the plan was made."""

    batch_id: UUID
    amount: Decimal
    remaining_amount: Decimal
    earned_at: datetime
    expires_at: datetime

    def is_available(self, now: datetime) -> bool:
        return self.remaining_amount > ZERO and self.expires_at > now

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now


@dataclass(frozen=True)
class Allocation:
    """``amount`` taken from ``batch_id``, leaving ``remaining_after``."""

    batch_id: UUID
    amount: Decimal
    remaining_after: Decimal


@dataclass(frozen=True)
class SpendPlan:
    allocations: tuple[Allocation, ...]

    @property
    def total(self) -> Decimal:
        return sum((a.amount for a in self.allocations), ZERO)


@dataclass(frozen=True)
class UsedEntry:
    """A Used ledger entry that a reversal has to undo."""

    entry_id: UUID
    source_batch_id: UUID
    amount: Decimal


@dataclass(frozen=True)
class Restoration:
    batch_id: UUID
    amount: Decimal
    remaining_after: Decimal


@dataclass(frozen=True)
class ReversalPlan:
    restorations: tuple[Restoration, ...]
    refund_amount: Decimal
    reversed_entry_ids: tuple[UUID, ...]

    @property
    def total(self) -> Decimal:
        return sum((r.amount for r in self.restorations), ZERO) + self.refund_amount


def fifo_order(batches: Iterable[BatchSnapshot]) -> list[BatchSnapshot]:
    return sorted(batches, key=lambda b: (b.expires_at, b.earned_at, str(b.batch_id)))


def available_balance(batches: Iterable[BatchSnapshot], now: datetime) -> Decimal:
    return sum((b.remaining_amount for b in batches if b.is_available(now)), ZERO)


def plan_spend(
    customer_id: UUID,
    batches: Iterable[BatchSnapshot],
    amount: Decimal,
    now: datetime,
) -> Result[SpendPlan]:
    """
    Allocate ``amount`` across available batches, earliest expiry first.

    Returns:
        Result carrying a SpendPlan whose total equals ``amount``, or
        ValidationError / InsufficientCashbackError with nothing allocated.
    """
    if amount <= ZERO:
        return Result.fail(ValidationError.for_field("amount", "must be greater than zero"))

    eligible = fifo_order(b for b in batches if b.is_available(now))
    available = sum((b.remaining_amount for b in eligible), ZERO)
    if amount > available:
        return Result.fail(InsufficientCashbackError(customer_id, amount, available))

    allocations: list[Allocation] = []
    outstanding = amount
    for batch in eligible:
        if outstanding <= ZERO:
            break
        take = min(batch.remaining_amount, outstanding)
        allocations.append(
            Allocation(
                batch_id=batch.batch_id,
                amount=take,
                remaining_after=batch.remaining_amount - take,
            )
        )
        outstanding -= take

    return Result.ok(SpendPlan(allocations=tuple(allocations)))


def plan_expiry(batches: Iterable[BatchSnapshot], now: datetime) -> tuple[Allocation, ...]:
    """Zero out every batch with remaining > 0 whose expiry is at or before ``now``."""
    return tuple(
        Allocation(batch_id=b.batch_id, amount=b.remaining_amount, remaining_after=ZERO)
        for b in fifo_order(batches)
        if b.remaining_amount > ZERO and b.is_expired(now)
    )


def plan_reversal(
    used_entries: Iterable[UsedEntry],
    sources: dict[UUID, BatchSnapshot],
    now: datetime,
) -> Result[ReversalPlan]:
    """
    Undo Used entries.

    Amounts go back to their source batch while it is unexpired; otherwise
    they accumulate into ``refund_amount`` for a fresh refund batch.
    """
    remaining = {batch_id: s.remaining_amount for batch_id, s in sources.items()}
    restored: dict[UUID, Decimal] = {}
    refund = ZERO
    entry_ids: list[UUID] = []

    for entry in used_entries:
        source = sources.get(entry.source_batch_id)
        if source is None:
            return Result.fail(NotFoundError("CashbackBatch", entry.source_batch_id))
        entry_ids.append(entry.entry_id)
        if source.is_expired(now):
            refund += entry.amount
            continue
        new_remaining = remaining[source.batch_id] + entry.amount
        if new_remaining > source.amount:
            return Result.fail(
                ConflictError(
                    "CashbackBatch",
                    source.batch_id,
                    "restoration would exceed the batch's original amount",
                )
            )
        remaining[source.batch_id] = new_remaining
        restored[source.batch_id] = restored.get(source.batch_id, ZERO) + entry.amount

    restorations = tuple(
        Restoration(batch_id=batch_id, amount=amount, remaining_after=remaining[batch_id])
        for batch_id, amount in restored.items()
    )
    return Result.ok(
        ReversalPlan(
            restorations=restorations,
            refund_amount=refund,
            reversed_entry_ids=tuple(entry_ids),
        )
    )
