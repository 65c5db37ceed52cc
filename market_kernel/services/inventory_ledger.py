"""
InventoryLedger -- per-product stock count and stock status.

Responsibility:
    The only writer of ``products.stock_quantity`` and ``products.status``.
    Applies stock adjustments as a single conditional UPDATE and journals
    each applied adjustment as a StockMovementModel row.

Architecture position:
    Kernel > Services.  Invoked by the OrderFulfillmentOrchestrator inside
    its unit of work.

Invariants enforced:
    - stock_quantity >= 0.  An adjustment is a compare-and-decrement
      against the committed quantity: ``UPDATE ... SET stock_quantity =
      stock_quantity + :delta WHERE stock_quantity + :delta >= 0``.  The
      UPDATE row lock (PostgreSQL) or the database write lock (SQLite)
      serializes concurrent adjustments of the same product.
    - Status follows quantity: 0 => OUT_OF_STOCK, positive after
      OUT_OF_STOCK => ACTIVE.  Computed in the same statement.
    - No partial adjustment: a rejected UPDATE changes nothing.

Failure modes:
    - NotFoundError for a missing or soft-deleted product.
    - InsufficientStockError when the result would be negative.
    - ValidationError for a zero delta or a non-positive requested quantity.

Audit relevance:
    Every applied adjustment is logged (``stock_adjusted``) and journaled
    with reason, order and actor.
"""

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import case, select, update

from market_kernel.db.base import AuditInfo, not_deleted
from market_kernel.domain.result import Result
from market_kernel.domain.stock import ProductStatus, StockLevel, StockReason
from market_kernel.exceptions import (
    InsufficientStockError,
    NotFoundError,
    ValidationError,
)
from market_kernel.logging_config import get_logger
from market_kernel.models.product import ProductModel, StockMovementModel
from market_kernel.services.base import BaseService

logger = get_logger("services.inventory_ledger")


@dataclass(frozen=True)
class Availability:
    product_id: UUID
    requested: int
    available: int
    is_active: bool

    @property
    def is_available(self) -> bool:
        return self.is_active and self.available >= self.requested


class InventoryLedger(BaseService):
    """
    Stock ledger over ProductModel rows.

    Guarantees:
        - adjust_stock either applies the whole delta or nothing.
        - Flushes only; the caller commits.
    """

    def get_product(self, product_id: UUID) -> ProductModel | None:
        return self.session.execute(
            select(ProductModel)
            .where(ProductModel.id == product_id, not_deleted(ProductModel))
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def adjust_stock(
        self,
        product_id: UUID,
        delta: int,
        reason: StockReason,
        *,
        order_id: UUID | None = None,
        actor_id: UUID | None = None,
    ) -> Result[StockLevel]:
        """
        Atomically add ``delta`` to the product's stock.

        Args:
            product_id: Product to adjust.
            delta: Positive to restock, negative to consume.
            reason: Why the stock moved (order, cancel, restock, correction).
            order_id: Order that caused the movement, if any.
            actor_id: Actor on whose behalf the movement happens.

        Returns:
            Result carrying the product's StockLevel after the adjustment.
        """
        if delta == 0:
            return Result.fail(ValidationError.for_field("delta", "must not be zero"))

        now = self.clock.now()
        products = ProductModel.__table__
        new_quantity = products.c.stock_quantity + delta

        stmt = (
            update(products)
            .where(
                products.c.id == product_id,
                products.c.deleted_at.is_(None),
                new_quantity >= 0,
            )
            .values(
                {
                    products.c.stock_quantity: new_quantity,
                    products.c.status: case(
                        (new_quantity == 0, ProductStatus.OUT_OF_STOCK.value),
                        (
                            products.c.status == ProductStatus.OUT_OF_STOCK.value,
                            ProductStatus.ACTIVE.value,
                        ),
                        else_=products.c.status,
                    ),
                    products.c.updated_at: now,
                }
            )
        )
        applied = self.session.execute(stmt).rowcount == 1

        product = self.get_product(product_id)
        if product is None:
            return Result.fail(NotFoundError("Product", product_id))

        if not applied:
            logger.warning(
                "stock_adjustment_rejected",
                extra={
                    "product_id": str(product_id),
                    "delta": delta,
                    "available": product.stock_quantity,
                    "reason": reason.value,
                },
            )
            return Result.fail(
                InsufficientStockError(product_id, -delta, product.stock_quantity)
            )

        self.session.add(
            StockMovementModel(
                product_id=product_id,
                delta=delta,
                quantity_after=product.stock_quantity,
                reason=reason.value,
                order_id=order_id,
                actor_id=actor_id,
                audit=AuditInfo.new(now),
            )
        )
        self.session.flush()

        level = product.to_stock_level()
        logger.info(
            "stock_adjusted",
            extra={
                "product_id": str(product_id),
                "delta": delta,
                "quantity_after": level.quantity,
                "status": level.status.value,
                "reason": reason.value,
                "low_stock": level.is_low_stock,
            },
        )
        return Result.ok(level)

    def check_availability(self, product_id: UUID, quantity: int) -> Result[Availability]:
        """Read-only check; reserves nothing."""
        if quantity <= 0:
            return Result.fail(ValidationError.for_field("quantity", "must be positive"))
        product = self.get_product(product_id)
        if product is None:
            return Result.fail(NotFoundError("Product", product_id))
        return Result.ok(
            Availability(
                product_id=product_id,
                requested=quantity,
                available=product.stock_quantity,
                is_active=product.is_active and product.status != ProductStatus.INACTIVE.value,
            )
        )
