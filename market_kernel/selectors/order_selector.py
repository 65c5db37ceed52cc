"""Read side of the order aggregate."""

from uuid import UUID

from sqlalchemy import func, select

from market_kernel.db.base import not_deleted
from market_kernel.domain.dtos import OrderSummary, Page
from market_kernel.domain.order_lifecycle import OrderStatus
from market_kernel.models.order import OrderModel
from market_kernel.selectors.base import BaseSelector


class OrderSelector(BaseSelector):

    def get(self, order_id: UUID) -> OrderSummary | None:
        order = self.session.execute(
            select(OrderModel).where(OrderModel.id == order_id, not_deleted(OrderModel))
        ).scalar_one_or_none()
        return None if order is None else order.to_summary()

    def list_for_customer(
        self,
        customer_id: UUID,
        status: OrderStatus | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Page:
        return self._list(OrderModel.customer_id == customer_id, status, page, page_size)

    def _list(self, owner_clause, status, page: int, page_size: int) -> Page:
        offset, limit = self._page_bounds(page, page_size)
        base = select(OrderModel).where(owner_clause, not_deleted(OrderModel))
        if status is not None:
            base = base.where(OrderModel.status == status.value)
        total = self.session.execute(
            select(func.count()).select_from(base.subquery())
        ).scalar_one()
        created_at = OrderModel.__table__.c.created_at
        rows = self.session.execute(
            base.order_by(created_at.desc(), OrderModel.order_number.desc())
            .offset(offset)
            .limit(limit)
        ).scalars()
        return Page(
            items=tuple(row.to_summary() for row in rows),
            page=page,
            page_size=page_size,
            total_count=total,
        )
