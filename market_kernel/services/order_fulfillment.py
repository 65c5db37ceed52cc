"""
OrderFulfillmentOrchestrator -- one atomic unit of work per customer action.

Responsibility:
    Composes discount authorization, the inventory ledger, the cashback
    ledger and the order lifecycle into create, cancel, status-advance,
    discount and expiry operations.  Owns the transaction boundary of each.

Architecture position:
    Kernel > Services.  The outermost kernel component.  Receives a session
    factory, opens one session per operation, and returns ``Result`` values.

Invariants enforced:
    - All-or-nothing: the first failing step rolls back every mutation of
      the operation (stock, ledger, order) before the failure is returned.
    - Products are adjusted in ascending id order so concurrent orders lock
      rows in the same order.
    - ComputeFinalPrice runs before every write of order amounts.
    - Cashback is earned only on the transition to DELIVERED.
    - ExpireCashback is single-flight within the process.
    - Notifications are emitted only after commit; emitter failures never
      affect the committed result.

Failure modes:
    - Every failure is a Result carrying a MarketKernelError.  IntegrityError
      and lock errors become ConflictError (retryable once); other
      persistence errors and unexpected faults become InternalError.

Audit relevance:
    Each operation logs ``<operation>_completed`` or ``<operation>_failed``
    with duration and error code under a bound correlation id.
"""

import threading
import time
from collections import OrderedDict
from decimal import Decimal
from typing import Callable, TypeVar
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from market_kernel.config import FulfillmentConfig
from market_kernel.db.base import AuditInfo, not_deleted, soft_delete, touch
from market_kernel.db.types import ZERO, round_money
from market_kernel.domain import discount_policy
from market_kernel.domain.actors import Actor, ActorRole
from market_kernel.domain.clock import Clock, SystemClock
from market_kernel.domain.dtos import (
    CashbackEntry,
    CashbackSummary,
    CreateOrderRequest,
    ExpiryRunSummary,
    OrderSummary,
    Page,
)
from market_kernel.domain.order_lifecycle import (
    DeliveryType,
    LinePricing,
    OrderStatus,
    compute_final_price,
    order_total,
    transition,
)
from market_kernel.domain.result import Result
from market_kernel.domain.stock import ProductStatus, StockLevel, StockReason
from market_kernel.exceptions import (
    ConflictError,
    ForbiddenError,
    InsufficientStockError,
    InternalError,
    MarketKernelError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from market_kernel.logging_config import LogContext, get_logger
from market_kernel.models.cart import CartItemModel
from market_kernel.models.order import (
    DiscountReasonModel,
    OrderDiscountModel,
    OrderItemModel,
    OrderModel,
)
from market_kernel.models.product import ProductModel
from market_kernel.selectors.cashback_selector import CashbackSelector
from market_kernel.selectors.order_selector import OrderSelector
from market_kernel.services.cashback_ledger import CashbackLedger
from market_kernel.services.inventory_ledger import InventoryLedger
from market_kernel.services.notifications import (
    LoggingNotificationEmitter,
    Notification,
    NotificationEmitter,
    NotificationType,
    emit_all,
    order_payload,
)
from market_kernel.services.order_numbers import OrderNumberService

logger = get_logger("services.order_fulfillment")

T = TypeVar("T")

_EXPIRY_LOCK = threading.Lock()

_DISCOUNTABLE_STATUSES = frozenset({OrderStatus.PENDING})


class _UnitOfWork:
    """Per-operation collaborators bound to one session."""

    def __init__(self, session: Session, clock: Clock, config: FulfillmentConfig):
        self.session = session
        self.inventory = InventoryLedger(session, clock)
        self.cashback = CashbackLedger(session, clock, config)
        self.order_numbers = OrderNumberService(session, clock, config.order_number_prefix)
        self.notifications: list[Notification] = []

    def notify(self, event_type: NotificationType, payload: dict) -> None:
        self.notifications.append(Notification(event_type, payload))


class OrderFulfillmentOrchestrator:
    """
    Entry point for order fulfillment operations.

    Contract:
        Every public write method opens its own session, commits on a
        successful Result and rolls back otherwise.  Safe to share across
        threads.

    Non-goals:
        - Does NOT retry Conflict results; the caller may retry once.
        - Does NOT deliver notifications; it hands them to the emitter.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session] | Callable[[], Session],
        clock: Clock | None = None,
        config: FulfillmentConfig | None = None,
        notifier: NotificationEmitter | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._config = config or FulfillmentConfig()
        self._notifier = notifier or LoggingNotificationEmitter()

    @property
    def config(self) -> FulfillmentConfig:
        return self._config

    # ------------------------------------------------------------------
    # CreateOrder
    # ------------------------------------------------------------------

    def create_order(self, request: CreateOrderRequest, actor: Actor | None) -> Result[OrderSummary]:
        """
        Place an order from explicit items or from the customer's cart.

        Steps, all in one transaction: resolve lines, pre-check stock,
        authorize the optional discount, validate the price, consume stock
        for every line, spend cashback, persist the order, clear the cart.
        The pre-check only fails fast; the conditional decrement in
        adjust_stock is what keeps stock non-negative under concurrency.
        """
        return self._execute(
            "create_order",
            actor,
            lambda uow: self._create_order(uow, request, actor),
            customer_id=request.customer_id,
        )

    def _create_order(
        self, uow: _UnitOfWork, request: CreateOrderRequest, actor: Actor
    ) -> Result[OrderSummary]:
        if actor.role == ActorRole.CUSTOMER and actor.actor_id != request.customer_id:
            return Result.fail(ForbiddenError(actor.role.value, "order for another customer"))

        invalid = self._validate_request(request)
        if invalid is not None:
            return Result.fail(invalid)

        resolved = self._resolve_lines(uow.session, request)
        if not resolved.is_success:
            return resolved
        lines, products, cart_rows = resolved.value

        for product_id, (quantity, _) in lines.items():
            availability = uow.inventory.check_availability(product_id, quantity)
            if not availability.is_success:
                return availability
            if not availability.value.is_available:
                logger.info(
                    "stock_precheck_failed",
                    extra={
                        "product_id": str(product_id),
                        "requested": quantity,
                        "available": availability.value.available,
                    },
                )
                return Result.fail(
                    InsufficientStockError(product_id, quantity, availability.value.available)
                )

        total = order_total([pricing for _, pricing in lines.values()])
        delivery_fee = round_money(
            request.delivery_fee
            if request.delivery_fee is not None
            else self._config.default_delivery_fee
        )
        cashback_to_use = round_money(request.cashback_to_use)

        discount_amount = ZERO
        discount_reason_id = None
        if request.discount is not None:
            authorized = self._authorize_discount(
                uow.session, actor, request.discount.amount, total, ZERO, request.discount.reason_id
            )
            if not authorized.is_success:
                return authorized
            discount_amount = round_money(authorized.value.approved_amount)
            discount_reason_id = request.discount.reason_id

        priced = compute_final_price(total, discount_amount, cashback_to_use, delivery_fee)
        if not priced.is_success:
            return priced
        pricing = priced.value

        order_id = uuid4()
        for product_id in sorted(lines, key=str):
            quantity, _ = lines[product_id]
            adjusted = uow.inventory.adjust_stock(
                product_id,
                -quantity,
                StockReason.ORDER,
                order_id=order_id,
                actor_id=actor.actor_id,
            )
            if not adjusted.is_success:
                return adjusted
            self._notify_low_stock(uow, adjusted.value)

        if cashback_to_use > ZERO:
            spent = uow.cashback.spend(request.customer_id, order_id, cashback_to_use)
            if not spent.is_success:
                return spent

        now = self._clock.now()
        order = OrderModel(
            id=order_id,
            order_number=uow.order_numbers.next_order_number(),
            customer_id=request.customer_id,
            seller_id=actor.actor_id if actor.is_staff else None,
            status=OrderStatus.PENDING.value,
            payment_method=request.payment_method.value,
            delivery_type=request.delivery_type.value,
            delivery_address=request.delivery_address,
            notes=request.notes,
            from_cart=request.items is None,
            total_price=pricing.total_price,
            discount_applied=pricing.discount_applied,
            cashback_used=pricing.cashback_used,
            delivery_fee=pricing.delivery_fee,
            final_price=pricing.final_price,
            cashback_earned=ZERO,
            audit=AuditInfo.new(now),
        )
        order.items = [
            OrderItemModel(
                line_number=number,
                product_id=product_id,
                product_name=products[product_id].name,
                quantity=quantity,
                unit_price=line.unit_price,
                discount_amount=line.discount_amount,
                audit=AuditInfo.new(now),
            )
            for number, (product_id, (quantity, line)) in enumerate(lines.items(), start=1)
        ]
        order.discounts = []
        if discount_amount > ZERO:
            order.discounts.append(
                OrderDiscountModel(
                    amount=discount_amount,
                    discount_reason_id=discount_reason_id,
                    applied_by_actor_id=actor.actor_id,
                    applied_by_role=actor.role.value,
                    applied_at=now,
                    audit=AuditInfo.new(now),
                )
            )
        uow.session.add(order)

        for row in cart_rows:
            soft_delete(row, now)
        uow.session.flush()

        logger.info(
            "order_created",
            extra={
                "order_id": str(order.id),
                "order_number": order.order_number,
                "item_count": len(order.items),
                "total_price": order.total_price,
                "discount_applied": order.discount_applied,
                "cashback_used": order.cashback_used,
                "final_price": order.final_price,
                "from_cart": order.from_cart,
            },
        )
        uow.notify(NotificationType.ORDER_CREATED, order_payload(order))
        return Result.ok(order.to_summary())

    def _validate_request(self, request: CreateOrderRequest) -> ValidationError | None:
        field_errors: dict[str, str] = {}
        if request.cashback_to_use < ZERO:
            field_errors["cashback_to_use"] = "must not be negative"
        if request.delivery_fee is not None and request.delivery_fee < ZERO:
            field_errors["delivery_fee"] = "must not be negative"
        if request.delivery_type in (DeliveryType.POSTAL, DeliveryType.COURIER) and not (
            request.delivery_address and request.delivery_address.strip()
        ):
            field_errors["delivery_address"] = "required for postal and courier delivery"
        if request.items is not None:
            if not request.items:
                field_errors["items"] = "at least one item is required"
            for index, item in enumerate(request.items):
                if item.quantity <= 0:
                    field_errors[f"items[{index}].quantity"] = "must be positive"
        if field_errors:
            return ValidationError("Invalid order request", field_errors)
        return None

    def _resolve_lines(self, session: Session, request: CreateOrderRequest):
        """
        Merge requested quantities per product and price them.

        Returns:
            Result of (lines, products, cart_rows) where ``lines`` maps
            product id to (quantity, LinePricing) in request order.
        """
        cart_rows: list[CartItemModel] = []
        quantities: OrderedDict[UUID, int] = OrderedDict()
        if request.items is None:
            cart_rows = list(
                session.execute(
                    select(CartItemModel)
                    .where(
                        CartItemModel.customer_id == request.customer_id,
                        not_deleted(CartItemModel),
                    )
                    .order_by(CartItemModel.__table__.c.created_at, CartItemModel.id)
                ).scalars()
            )
            if not cart_rows:
                return Result.fail(ValidationError.for_field("items", "cart is empty"))
            pairs = [(row.product_id, row.quantity) for row in cart_rows]
        else:
            pairs = [(item.product_id, item.quantity) for item in request.items]

        for product_id, quantity in pairs:
            quantities[product_id] = quantities.get(product_id, 0) + quantity

        products = {
            p.id: p
            for p in session.execute(
                select(ProductModel).where(
                    ProductModel.id.in_(list(quantities)),
                    not_deleted(ProductModel),
                )
            ).scalars()
        }
        lines: OrderedDict[UUID, tuple[int, LinePricing]] = OrderedDict()
        for product_id, quantity in quantities.items():
            product = products.get(product_id)
            if product is None:
                return Result.fail(NotFoundError("Product", product_id))
            if not product.is_active or product.status == ProductStatus.INACTIVE.value:
                return Result.fail(
                    ValidationError.for_field(f"items.{product_id}", "product is not available for sale")
                )
            lines[product_id] = (quantity, LinePricing(quantity=quantity, unit_price=round_money(product.price)))
        return Result.ok((lines, products, cart_rows))

    # ------------------------------------------------------------------
    # CancelOrder / UpdateOrderStatus
    # ------------------------------------------------------------------

    def cancel_order(
        self, order_id: UUID, actor: Actor | None, reason: str | None = None
    ) -> Result[OrderSummary]:
        """
        Cancel an order, restoring its stock and reversing its cashback spend.

        The order keeps its prior status if any restoration fails.
        """
        return self._execute(
            "cancel_order",
            actor,
            lambda uow: self._cancel_order(uow, order_id, actor, reason),
            order_id=order_id,
        )

    def _cancel_order(
        self, uow: _UnitOfWork, order_id: UUID, actor: Actor, reason: str | None
    ) -> Result[OrderSummary]:
        loaded = self._load_order(uow.session, order_id, for_update=True)
        if not loaded.is_success:
            return loaded
        order = loaded.value

        if actor.role == ActorRole.CUSTOMER and order.customer_id != actor.actor_id:
            return Result.fail(ForbiddenError(actor.role.value, "cancel another customer's order"))

        previous = order.order_status
        moved = transition(previous, OrderStatus.CANCELLED)
        if not moved.is_success:
            return moved

        for item in sorted(order.items, key=lambda i: str(i.product_id)):
            restored = uow.inventory.adjust_stock(
                item.product_id,
                item.quantity,
                StockReason.CANCEL,
                order_id=order.id,
                actor_id=actor.actor_id,
            )
            if not restored.is_success:
                return restored

        if order.cashback_used > ZERO:
            reversed_ = uow.cashback.reverse(order.id)
            if not reversed_.is_success:
                return reversed_

        now = self._clock.now()
        order.status = OrderStatus.CANCELLED.value
        order.cancelled_at = now
        order.cancellation_reason = reason
        touch(order, now)
        uow.session.flush()

        logger.info(
            "order_cancelled",
            extra={
                "order_number": order.order_number,
                "previous_status": previous.value,
                "cashback_reversed": order.cashback_used,
                "reason": reason,
            },
        )
        uow.notify(
            NotificationType.ORDER_CANCELLED,
            order_payload(order, previous_status=previous.value, reason=reason),
        )
        return Result.ok(order.to_summary())

    def update_order_status(
        self, order_id: UUID, new_status: OrderStatus, actor: Actor | None
    ) -> Result[OrderSummary]:
        """
        Move an order along the lifecycle.  Staff only.

        Reaching DELIVERED earns cashback on the final price in the same
        transaction.  Requesting CANCELLED runs the full cancellation.
        """
        return self._execute(
            "update_order_status",
            actor,
            lambda uow: self._update_order_status(uow, order_id, new_status, actor),
            order_id=order_id,
        )

    def _update_order_status(
        self, uow: _UnitOfWork, order_id: UUID, new_status: OrderStatus, actor: Actor
    ) -> Result[OrderSummary]:
        if not actor.is_staff:
            return Result.fail(ForbiddenError(actor.role.value, "change order status"))
        if new_status == OrderStatus.CANCELLED:
            return self._cancel_order(uow, order_id, actor, None)

        loaded = self._load_order(uow.session, order_id, for_update=True)
        if not loaded.is_success:
            return loaded
        order = loaded.value

        previous = order.order_status
        moved = transition(previous, new_status)
        if not moved.is_success:
            return moved
        step = moved.value

        now = self._clock.now()
        order.status = new_status.value
        if step.timestamp_field is not None:
            setattr(order, step.timestamp_field, now)

        if step.earns_cashback and order.final_price > ZERO:
            earned = uow.cashback.earn(
                order.customer_id,
                order.id,
                order.final_price,
                self._config.cashback_percentage,
                description=f"Cashback for order {order.order_number}",
            )
            if earned.is_success:
                order.cashback_earned = earned.value.amount
                uow.notify(
                    NotificationType.CASHBACK_EARNED,
                    order_payload(order, amount=str(earned.value.amount),
                                  expires_at=earned.value.expires_at),
                )
            elif earned.code != ValidationError.code:
                return earned

        touch(order, now)
        uow.session.flush()

        logger.info(
            "order_status_changed",
            extra={
                "order_number": order.order_number,
                "from_status": previous.value,
                "to_status": new_status.value,
                "cashback_earned": order.cashback_earned,
            },
        )
        uow.notify(
            NotificationType.ORDER_STATUS_CHANGED,
            order_payload(order, previous_status=previous.value),
        )
        return Result.ok(order.to_summary())

    # ------------------------------------------------------------------
    # Discounts
    # ------------------------------------------------------------------

    def apply_discount(
        self,
        order_id: UUID,
        amount: Decimal,
        reason_id: UUID | None,
        actor: Actor | None,
    ) -> Result[OrderSummary]:
        """Apply a discount to a pending order through the authorization gate."""
        return self._execute(
            "apply_discount",
            actor,
            lambda uow: self._apply_discount(uow, order_id, amount, reason_id, actor),
            order_id=order_id,
        )

    def _apply_discount(
        self,
        uow: _UnitOfWork,
        order_id: UUID,
        amount: Decimal,
        reason_id: UUID | None,
        actor: Actor,
    ) -> Result[OrderSummary]:
        loaded = self._load_order(uow.session, order_id, for_update=True)
        if not loaded.is_success:
            return loaded
        order = loaded.value
        if order.order_status not in _DISCOUNTABLE_STATUSES:
            return Result.fail(
                ValidationError.for_field("status", f"cannot discount an order in {order.status}")
            )

        amount = round_money(amount)
        authorized = self._authorize_discount(
            uow.session, actor, amount, order.total_price, order.discount_applied, reason_id
        )
        if not authorized.is_success:
            return authorized

        priced = compute_final_price(
            order.total_price,
            order.discount_applied + amount,
            order.cashback_used,
            order.delivery_fee,
        )
        if not priced.is_success:
            return priced

        now = self._clock.now()
        order.discounts.append(
            OrderDiscountModel(
                amount=amount,
                discount_reason_id=reason_id,
                applied_by_actor_id=actor.actor_id,
                applied_by_role=actor.role.value,
                applied_at=now,
                audit=AuditInfo.new(now),
            )
        )
        order.discount_applied = priced.value.discount_applied
        order.final_price = priced.value.final_price
        touch(order, now)
        uow.session.flush()

        logger.info(
            "order_discount_applied",
            extra={
                "order_number": order.order_number,
                "amount": amount,
                "max_allowed": authorized.value.max_allowed_amount,
                "final_price": order.final_price,
            },
        )
        return Result.ok(order.to_summary())

    def remove_discount(
        self, order_id: UUID, discount_id: UUID, actor: Actor | None
    ) -> Result[OrderSummary]:
        """Soft-delete a discount from a pending order and reprice it."""
        return self._execute(
            "remove_discount",
            actor,
            lambda uow: self._remove_discount(uow, order_id, discount_id, actor),
            order_id=order_id,
        )

    def _remove_discount(
        self, uow: _UnitOfWork, order_id: UUID, discount_id: UUID, actor: Actor
    ) -> Result[OrderSummary]:
        if not actor.is_staff:
            return Result.fail(ForbiddenError(actor.role.value, "remove discounts"))
        loaded = self._load_order(uow.session, order_id, for_update=True)
        if not loaded.is_success:
            return loaded
        order = loaded.value
        if order.order_status not in _DISCOUNTABLE_STATUSES:
            return Result.fail(
                ValidationError.for_field("status", f"cannot change discounts of an order in {order.status}")
            )

        discount = next((d for d in order.active_discounts() if d.id == discount_id), None)
        if discount is None:
            return Result.fail(NotFoundError("OrderDiscount", discount_id))

        remaining = sum((d.amount for d in order.active_discounts() if d.id != discount_id), ZERO)
        priced = compute_final_price(
            order.total_price, remaining, order.cashback_used, order.delivery_fee
        )
        if not priced.is_success:
            return priced

        now = self._clock.now()
        soft_delete(discount, now)
        order.discount_applied = priced.value.discount_applied
        order.final_price = priced.value.final_price
        touch(order, now)
        uow.session.flush()

        logger.info(
            "order_discount_removed",
            extra={
                "order_number": order.order_number,
                "discount_id": str(discount_id),
                "final_price": order.final_price,
            },
        )
        return Result.ok(order.to_summary())

    # ------------------------------------------------------------------
    # Cashback
    # ------------------------------------------------------------------

    def expire_cashback(self) -> Result[ExpiryRunSummary]:
        """
        Expire every batch whose expiry has passed.

        Single-flight: while a run is in progress another call returns
        immediately with ``skipped=True``.
        """
        if not _EXPIRY_LOCK.acquire(blocking=False):
            logger.info("cashback_expiry_skipped", extra={"reason": "already_running"})
            return Result.ok(ExpiryRunSummary(skipped=True))
        try:
            return self._execute(
                "expire_cashback",
                None,
                lambda uow: uow.cashback.expire(self._clock.now()),
                require_actor=False,
            )
        finally:
            _EXPIRY_LOCK.release()

    def get_available_cashback(self, customer_id: UUID) -> Decimal:
        with self._read_session() as session:
            return CashbackLedger(session, self._clock, self._config).get_available_balance(customer_id)

    def get_cashback_summary(self, customer_id: UUID) -> CashbackSummary:
        with self._read_session() as session:
            return CashbackSelector(session, self._clock).get_summary(
                customer_id, self._config.expiring_window_days
            )

    def get_cashback_history(
        self, customer_id: UUID, page: int = 1, page_size: int | None = None
    ) -> Page:
        with self._read_session() as session:
            return CashbackSelector(session, self._clock).get_history(
                customer_id, page, page_size if page_size is not None else self._config.history_page_size
            )

    def get_expiring_cashback(self, customer_id: UUID, days: int | None = None) -> tuple[CashbackEntry, ...]:
        with self._read_session() as session:
            return CashbackSelector(session, self._clock).get_expiring(
                customer_id, days if days is not None else self._config.expiring_window_days
            )

    # ------------------------------------------------------------------
    # Order queries
    # ------------------------------------------------------------------

    def get_order(self, order_id: UUID, actor: Actor | None) -> Result[OrderSummary]:
        """Customers see their own orders, sellers the orders they placed."""
        if actor is None:
            return Result.fail(UnauthorizedError())
        with self._read_session() as session:
            summary = OrderSelector(session, self._clock).get(order_id)
        if summary is None:
            return Result.fail(NotFoundError("Order", order_id))
        if actor.role == ActorRole.CUSTOMER and summary.customer_id != actor.actor_id:
            return Result.fail(ForbiddenError(actor.role.value, "view another customer's order"))
        if actor.role == ActorRole.SELLER and summary.seller_id != actor.actor_id:
            return Result.fail(ForbiddenError(actor.role.value, "view another seller's order"))
        return Result.ok(summary)

    def list_customer_orders(
        self,
        customer_id: UUID,
        actor: Actor | None,
        status: OrderStatus | None = None,
        page: int = 1,
        page_size: int | None = None,
    ) -> Result[Page]:
        if actor is None:
            return Result.fail(UnauthorizedError())
        if actor.role == ActorRole.CUSTOMER and actor.actor_id != customer_id:
            return Result.fail(ForbiddenError(actor.role.value, "list another customer's orders"))
        if page_size is None:
            page_size = self._config.history_page_size
        if page < 1 or page_size < 1:
            return Result.fail(ValidationError("Invalid paging", {"page": "must be >= 1", "page_size": "must be >= 1"}))
        with self._read_session() as session:
            return Result.ok(
                OrderSelector(session, self._clock).list_for_customer(customer_id, status, page, page_size)
            )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _authorize_discount(
        self,
        session: Session,
        actor: Actor,
        amount: Decimal,
        order_total_amount: Decimal,
        already_applied: Decimal,
        reason_id: UUID | None,
    ) -> Result[discount_policy.DiscountDecision]:
        reason = None
        if reason_id is not None:
            row = session.execute(
                select(DiscountReasonModel).where(
                    DiscountReasonModel.id == reason_id,
                    not_deleted(DiscountReasonModel),
                )
            ).scalar_one_or_none()
            if row is None:
                return Result.fail(NotFoundError("DiscountReason", reason_id))
            reason = row.to_info()

        decision = discount_policy.authorize(
            actor.role,
            round_money(amount),
            round_money(order_total_amount),
            seller_cap=self._config.seller_discount_cap,
            already_applied=round_money(already_applied),
            reason=reason,
        )
        if not decision.is_success:
            logger.warning(
                "discount_rejected",
                extra={
                    "actor_role": actor.role.value,
                    "requested": amount,
                    "order_total": order_total_amount,
                    "error_code": decision.code,
                },
            )
        return decision

    def _load_order(self, session: Session, order_id: UUID, for_update: bool) -> Result[OrderModel]:
        stmt = select(OrderModel).where(OrderModel.id == order_id, not_deleted(OrderModel))
        if for_update:
            stmt = stmt.with_for_update(of=OrderModel)
        order = session.execute(stmt.execution_options(populate_existing=True)).scalar_one_or_none()
        if order is None:
            return Result.fail(NotFoundError("Order", order_id))
        return Result.ok(order)

    def _notify_low_stock(self, uow: _UnitOfWork, level: StockLevel) -> None:
        if level.is_low_stock or level.is_out_of_stock:
            uow.notify(
                NotificationType.LOW_STOCK,
                {
                    "product_id": str(level.product_id),
                    "quantity": level.quantity,
                    "min_stock_level": level.min_stock_level,
                    "status": level.status.value,
                },
            )

    def _read_session(self) -> Session:
        return self._session_factory()

    def _execute(
        self,
        operation: str,
        actor: Actor | None,
        work: Callable[[_UnitOfWork], Result[T]],
        require_actor: bool = True,
        **log_fields,
    ) -> Result[T]:
        if require_actor and actor is None:
            return Result.fail(UnauthorizedError())

        start = time.monotonic()
        with LogContext.bind(
            correlation_id=uuid4(),
            actor_id=actor.actor_id if actor else None,
            operation=operation,
            **log_fields,
        ):
            session = self._session_factory()
            uow: _UnitOfWork | None = None
            try:
                uow = _UnitOfWork(session, self._clock, self._config)
                result = work(uow)
                if result.is_success:
                    session.commit()
                else:
                    session.rollback()
            except IntegrityError as exc:
                session.rollback()
                logger.warning(f"{operation}_conflict", exc_info=True)
                result = Result.fail(ConflictError(operation, "unit_of_work", str(exc.orig)))
            except OperationalError as exc:
                session.rollback()
                result = Result.fail(self._classify_operational_error(operation, exc))
            except SQLAlchemyError as exc:
                session.rollback()
                logger.error(f"{operation}_persistence_error", exc_info=True)
                result = Result.fail(InternalError("Persistence failure", cause=type(exc).__name__))
            except MarketKernelError as exc:
                session.rollback()
                logger.warning(f"{operation}_raised", exc_info=True)
                result = Result.fail(exc)
            except Exception as exc:
                session.rollback()
                logger.exception(f"{operation}_unexpected_error")
                result = Result.fail(InternalError("Unexpected fault", cause=type(exc).__name__))
            finally:
                session.close()

            duration_ms = round((time.monotonic() - start) * 1000, 2)
            if result.is_success:
                logger.info(f"{operation}_completed", extra={"duration_ms": duration_ms})
                if uow is not None:
                    emit_all(self._notifier, uow.notifications)
            else:
                logger.warning(
                    f"{operation}_failed",
                    extra={
                        "duration_ms": duration_ms,
                        "error_code": result.code,
                        "error_message": result.message,
                        "retryable": result.retryable,
                    },
                )
            return result

    @staticmethod
    def _classify_operational_error(operation: str, exc: OperationalError) -> MarketKernelError:
        text = str(exc.orig).lower()
        if "lock" in text or "deadlock" in text or "serializ" in text:
            logger.warning(f"{operation}_lock_conflict", exc_info=True)
            return ConflictError(operation, "unit_of_work", "lock contention")
        logger.error(f"{operation}_database_unavailable", exc_info=True)
        return InternalError("Database unavailable", cause=type(exc).__name__)
