"""
Frozen read models returned by the orchestrator and selectors.

These never expose ORM instances, so callers cannot mutate persisted
state outside the orchestrator.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from market_kernel.db.types import ZERO
from market_kernel.domain.order_lifecycle import DeliveryType, PaymentMethod


@dataclass(frozen=True)
class LineItemRequest:
    """A product and quantity the customer wants to order."""
    product_id: UUID
    quantity: int


@dataclass(frozen=True)
class DiscountRequest:
    amount: Decimal
    reason_id: UUID | None = None


@dataclass(frozen=True)
class CreateOrderRequest:
    """
    Checkout request.

    ``items=None`` orders the customer's current cart and clears it.
    ``delivery_fee=None`` applies the configured default fee.
    """
    customer_id: UUID
    payment_method: PaymentMethod
    delivery_type: DeliveryType
    items: tuple[LineItemRequest, ...] | None = None
    cashback_to_use: Decimal = ZERO
    discount: DiscountRequest | None = None
    delivery_fee: Decimal | None = None
    delivery_address: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class OrderItemSummary:
    product_id: UUID
    product_name: str
    quantity: int
    unit_price: Decimal
    discount_amount: Decimal
    subtotal: Decimal
    total: Decimal


@dataclass(frozen=True)
class OrderDiscountSummary:
    discount_id: UUID
    amount: Decimal
    discount_reason_id: UUID | None
    applied_by_actor_id: UUID
    applied_at: datetime


@dataclass(frozen=True)
class OrderSummary:
    order_id: UUID
    order_number: str
    customer_id: UUID
    seller_id: UUID | None
    status: str
    payment_method: str
    delivery_type: str
    total_price: Decimal
    discount_applied: Decimal
    cashback_used: Decimal
    delivery_fee: Decimal
    final_price: Decimal
    cashback_earned: Decimal
    created_at: datetime
    items: tuple[OrderItemSummary, ...] = ()
    discounts: tuple[OrderDiscountSummary, ...] = ()
    delivery_address: str | None = None
    notes: str | None = None
    confirmed_at: datetime | None = None
    shipped_at: datetime | None = None
    delivered_at: datetime | None = None
    cancelled_at: datetime | None = None
    cancellation_reason: str | None = None


@dataclass(frozen=True)
class CashbackEntry:
    entry_id: UUID
    transaction_type: str
    amount: Decimal
    remaining_amount: Decimal
    order_id: UUID | None
    source_batch_id: UUID | None
    earned_at: datetime
    expires_at: datetime
    is_refund: bool = False
    description: str | None = None


@dataclass(frozen=True)
class CashbackSummary:
    customer_id: UUID
    available_balance: Decimal = ZERO
    total_earned: Decimal = ZERO
    total_used: Decimal = ZERO
    total_expired: Decimal = ZERO
    expiring_soon: Decimal = ZERO
    expiring_window_days: int = 7


@dataclass(frozen=True)
class Page:
    """One page of a newest-first listing."""
    items: tuple = ()
    page: int = 1
    page_size: int = 20
    total_count: int = 0

    @property
    def total_pages(self) -> int:
        if self.total_count == 0:
            return 0
        return (self.total_count + self.page_size - 1) // self.page_size


@dataclass(frozen=True)
class ExpiryRunSummary:
    expired_count: int = 0
    expired_amount: Decimal = ZERO
    customers_affected: int = 0
    skipped: bool = False
    customer_ids: tuple[UUID, ...] = field(default=())
