"""
Discount authorization -- stateless role-based cap check.

Responsibility:
    Decide whether an actor may apply a discount of a given amount to an
    order of a given total, and report the maximum they could apply.

Architecture position:
    Kernel > Domain -- pure function, zero I/O.  The orchestrator resolves
    the optional discount reason from the database and passes it in as a
    ``DiscountReasonInfo`` snapshot.

Invariants enforced:
    - Seller discounts never exceed ``seller_cap`` (20%) of the order total.
    - Manager, Admin and SuperAdmin discounts never exceed the order total.
    - Customers cannot apply discounts.
    - Caps are cumulative: amounts already applied to the order count
      against the cap.

Failure modes:
    - ValidationError for a non-positive amount, a negative total, or an
      inactive reason.
    - ForbiddenError for customers and for seller-only reasons applied by
      other roles.
    - ExcessiveDiscountError carrying requested and max-allowed amounts.
"""

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from market_kernel.db.types import HUNDRED, ZERO, round_money
from market_kernel.domain.actors import ActorRole, UNCAPPED_DISCOUNT_ROLES
from market_kernel.domain.result import Result
from market_kernel.exceptions import (
    ExcessiveDiscountError,
    ForbiddenError,
    ValidationError,
)

DEFAULT_SELLER_CAP = Decimal("0.20")


@dataclass(frozen=True)
class DiscountReasonInfo:
    """Snapshot of a discount reason's limits."""

    reason_id: UUID
    name: str
    is_active: bool = True
    max_discount_percentage: Decimal | None = None
    max_discount_amount: Decimal | None = None
    is_seller_only: bool = False


@dataclass(frozen=True)
class DiscountDecision:
    """An approved discount and the cap it was checked against."""

    approved_amount: Decimal
    max_allowed_amount: Decimal
    actor_role: ActorRole


def role_cap(
    actor_role: ActorRole,
    order_total: Decimal,
    seller_cap: Decimal = DEFAULT_SELLER_CAP,
) -> Decimal:
    """Maximum total discount ``actor_role`` may grant on ``order_total``."""
    if actor_role in UNCAPPED_DISCOUNT_ROLES:
        return order_total
    if actor_role == ActorRole.SELLER:
        return round_money(order_total * seller_cap)
    return ZERO


def authorize(
    actor_role: ActorRole,
    discount_amount: Decimal,
    order_total: Decimal,
    *,
    seller_cap: Decimal = DEFAULT_SELLER_CAP,
    already_applied: Decimal = ZERO,
    reason: DiscountReasonInfo | None = None,
) -> Result[DiscountDecision]:
    """
    Check a discount request against the actor's role cap.

    Args:
        actor_role: Role of the actor applying the discount.
        discount_amount: Requested discount, must be > 0.
        order_total: Order total before discounts, must be >= 0.
        seller_cap: Fraction of the total a seller may discount.
        already_applied: Discounts already on the order.
        reason: Optional reason with its own percentage/amount limits.

    Returns:
        Result carrying a DiscountDecision, or the typed failure.
    """
    if discount_amount <= ZERO:
        return Result.fail(
            ValidationError.for_field("discount_amount", "must be greater than zero")
        )
    if order_total < ZERO:
        return Result.fail(ValidationError.for_field("order_total", "must not be negative"))
    if actor_role == ActorRole.CUSTOMER:
        return Result.fail(ForbiddenError(actor_role.value, "apply discounts"))

    cap = role_cap(actor_role, order_total, seller_cap)

    if reason is not None:
        if not reason.is_active:
            return Result.fail(
                ValidationError.for_field("discount_reason_id", "reason is inactive")
            )
        if reason.is_seller_only and actor_role != ActorRole.SELLER:
            return Result.fail(
                ForbiddenError(actor_role.value, f"use seller-only reason {reason.name}")
            )
        if reason.max_discount_percentage is not None:
            cap = min(cap, round_money(order_total * reason.max_discount_percentage / HUNDRED))
        if reason.max_discount_amount is not None:
            cap = min(cap, reason.max_discount_amount)

    max_allowed = max(cap - already_applied, ZERO)
    if discount_amount > max_allowed:
        return Result.fail(
            ExcessiveDiscountError(
                requested_amount=discount_amount,
                max_allowed_amount=max_allowed,
                actor_role=actor_role.value,
            )
        )

    return Result.ok(
        DiscountDecision(
            approved_amount=discount_amount,
            max_allowed_amount=max_allowed,
            actor_role=actor_role,
        )
    )
