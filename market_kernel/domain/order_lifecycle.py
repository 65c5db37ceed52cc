"""
Order lifecycle -- state machine and pricing invariant.

Responsibility:
    The single place that decides whether an order may move between two
    statuses, which side effects the move carries, and what an order's
    final price is.

Architecture position:
    Kernel > Domain -- pure functions, zero I/O.  Returns ``Result`` values;
    the orchestrator applies the side effects inside its unit of work.

Invariants enforced:
    - Only the transitions in ORDER_WORKFLOW are legal.  Delivered and
      Cancelled are terminal.
    - final_price = total_price - discount_applied - cashback_used
      + delivery_fee, and final_price >= 0.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from market_kernel.db.types import ZERO, round_money
from market_kernel.domain.result import Result
from market_kernel.exceptions import InvalidStateTransitionError, ValidationError
from market_kernel.logging_config import get_logger

logger = get_logger("domain.order_lifecycle")


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY_FOR_PICKUP = "ready_for_pickup"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentMethod(str, Enum):
    CASH = "cash"
    CARD = "card"
    CASHBACK = "cashback"
    MIXED = "mixed"


class DeliveryType(str, Enum):
    PICKUP = "pickup"
    POSTAL = "postal"
    COURIER = "courier"


@dataclass(frozen=True)
class Transition:
    """A legal status change and the side effects it carries."""
    from_state: OrderStatus
    to_state: OrderStatus
    action: str
    timestamp_field: str | None = None
    restores_inventory: bool = False
    earns_cashback: bool = False


@dataclass(frozen=True)
class Workflow:
    """A state machine definition."""
    name: str
    initial_state: OrderStatus
    terminal_states: frozenset[OrderStatus]
    transitions: tuple[Transition, ...]

    def find(self, current: OrderStatus, requested: OrderStatus) -> Transition | None:
        for transition in self.transitions:
            if transition.from_state == current and transition.to_state == requested:
                return transition
        return None

    def allowed_from(self, current: OrderStatus) -> tuple[OrderStatus, ...]:
        return tuple(t.to_state for t in self.transitions if t.from_state == current)


def _cancel(from_state: OrderStatus) -> Transition:
    return Transition(
        from_state,
        OrderStatus.CANCELLED,
        action="cancel",
        timestamp_field="cancelled_at",
        restores_inventory=True,
    )


ORDER_WORKFLOW = Workflow(
    name="order_fulfillment",
    initial_state=OrderStatus.PENDING,
    terminal_states=frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
    transitions=(
        Transition(OrderStatus.PENDING, OrderStatus.CONFIRMED, action="confirm",
                   timestamp_field="confirmed_at"),
        _cancel(OrderStatus.PENDING),
        Transition(OrderStatus.CONFIRMED, OrderStatus.PREPARING, action="start_preparing"),
        _cancel(OrderStatus.CONFIRMED),
        Transition(OrderStatus.PREPARING, OrderStatus.READY_FOR_PICKUP, action="mark_ready"),
        Transition(OrderStatus.PREPARING, OrderStatus.SHIPPED, action="ship",
                   timestamp_field="shipped_at"),
        _cancel(OrderStatus.PREPARING),
        Transition(OrderStatus.READY_FOR_PICKUP, OrderStatus.DELIVERED, action="hand_over",
                   timestamp_field="delivered_at", earns_cashback=True),
        Transition(OrderStatus.SHIPPED, OrderStatus.DELIVERED, action="confirm_delivery",
                   timestamp_field="delivered_at", earns_cashback=True),
    ),
)

logger.debug(
    "order_workflow_registered",
    extra={
        "workflow_name": ORDER_WORKFLOW.name,
        "transition_count": len(ORDER_WORKFLOW.transitions),
        "initial_state": ORDER_WORKFLOW.initial_state.value,
    },
)


def transition(current: OrderStatus, requested: OrderStatus) -> Result[Transition]:
    """
    Validate a status change against the transition table.

    Returns:
        Result carrying the matching Transition, or InvalidStateTransitionError
        naming the current and requested states.
    """
    found = ORDER_WORKFLOW.find(current, requested)
    if found is None:
        return Result.fail(InvalidStateTransitionError(current.value, requested.value))
    return Result.ok(found)


def can_cancel(current: OrderStatus) -> bool:
    return ORDER_WORKFLOW.find(current, OrderStatus.CANCELLED) is not None


# -----------------------------------------------------------------------------
# Pricing
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class LinePricing:
    quantity: int
    unit_price: Decimal
    discount_amount: Decimal = ZERO

    @property
    def subtotal(self) -> Decimal:
        return round_money(self.unit_price * self.quantity)

    @property
    def total(self) -> Decimal:
        return self.subtotal - self.discount_amount


@dataclass(frozen=True)
class OrderPricing:
    """Monetary state of an order after ComputeFinalPrice succeeded."""
    total_price: Decimal
    discount_applied: Decimal
    cashback_used: Decimal
    delivery_fee: Decimal
    final_price: Decimal


def order_total(lines: list[LinePricing] | tuple[LinePricing, ...]) -> Decimal:
    return round_money(sum((line.total for line in lines), ZERO))


def compute_final_price(
    total_price: Decimal,
    discount_applied: Decimal = ZERO,
    cashback_used: Decimal = ZERO,
    delivery_fee: Decimal = ZERO,
) -> Result[OrderPricing]:
    """
    Recompute and validate the final price.

    Fails with ValidationError (field-level detail) when any component is
    negative, when cashback exceeds the order total, or when the final
    price would be negative.
    """
    field_errors: dict[str, str] = {}
    for name, value in (
        ("total_price", total_price),
        ("discount_applied", discount_applied),
        ("cashback_used", cashback_used),
        ("delivery_fee", delivery_fee),
    ):
        if value < ZERO:
            field_errors[name] = "must not be negative"
    if cashback_used > total_price:
        field_errors.setdefault("cashback_used", "must not exceed the order total")
    if field_errors:
        return Result.fail(ValidationError("Invalid order amounts", field_errors))

    final_price = round_money(total_price - discount_applied - cashback_used + delivery_fee)
    if final_price < ZERO:
        return Result.fail(
            ValidationError.for_field(
                "final_price",
                f"would be negative ({final_price}); reduce discount or cashback",
            )
        )
    return Result.ok(
        OrderPricing(
            total_price=round_money(total_price),
            discount_applied=round_money(discount_applied),
            cashback_used=round_money(cashback_used),
            delivery_fee=round_money(delivery_fee),
            final_price=final_price,
        )
    )
