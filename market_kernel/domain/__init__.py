"""
Pure domain layer.

Lifecycle rules, pricing, discount authorization and cashback allocation
with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- Wall-clock time (callers pass ``now``)

All domain objects are immutable and deterministic.
"""

from market_kernel.domain.actors import Actor, ActorRole
from market_kernel.domain.cashback_allocation import (
    BatchSnapshot,
    ReversalPlan,
    SpendPlan,
    plan_expiry,
    plan_reversal,
    plan_spend,
)
from market_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from market_kernel.domain.discount_policy import DiscountDecision, authorize
from market_kernel.domain.dtos import (
    CreateOrderRequest,
    DiscountRequest,
    LineItemRequest,
    OrderSummary,
)
from market_kernel.domain.order_lifecycle import (
    ORDER_WORKFLOW,
    DeliveryType,
    OrderStatus,
    PaymentMethod,
    compute_final_price,
    transition,
)
from market_kernel.domain.result import Result

__all__ = [
    "Actor",
    "ActorRole",
    "BatchSnapshot",
    "Clock",
    "CreateOrderRequest",
    "DeliveryType",
    "DeterministicClock",
    "DiscountDecision",
    "DiscountRequest",
    "LineItemRequest",
    "ORDER_WORKFLOW",
    "OrderStatus",
    "OrderSummary",
    "PaymentMethod",
    "Result",
    "ReversalPlan",
    "SpendPlan",
    "SystemClock",
    "authorize",
    "compute_final_price",
    "plan_expiry",
    "plan_reversal",
    "plan_spend",
    "transition",
]
