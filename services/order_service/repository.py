from typing import List, Optional, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from .models import Order, OrderItem
from .schemas import OrderFilters


LIKE_ESCAPE = "\\"


def escape_like(term: str) -> str:
    """Makes % and _ in user input match literally."""
    return (
        term.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )


class OrderRepository:
    @staticmethod
    async def add_order(db: AsyncSession, order: Order, items: List[OrderItem]) -> Order:
        """Stages the order and its lines in the caller's transaction. No commit."""
        order.items = items
        db.add(order)
        await db.flush()
        return order

    @staticmethod
    async def get_order(db: AsyncSession, order_id: str, for_update: bool = False) -> Optional[Order]:
        stmt = (
            select(Order)
            .where(Order.id == order_id)
            .options(selectinload(Order.items))
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await db.execute(stmt)
        return result.scalars().first()

    @staticmethod
    async def get_by_idempotency_key(db: AsyncSession, user_id: Optional[str], key: str) -> Optional[Order]:
        owner = Order.user_id.is_(None) if user_id is None else Order.user_id == user_id
        result = await db.execute(
            select(Order)
            .where(owner, Order.idempotency_key == key)
            .options(selectinload(Order.items))
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    @staticmethod
    async def list_orders(
        db: AsyncSession,
        user_id: Optional[str],
        filters: OrderFilters,
        limit: int,
        offset: int,
    ) -> Tuple[List[Order], int]:
        """user_id=None lists every owner's orders (admin view)."""
        conditions = []
        if user_id is not None:
            conditions.append(Order.user_id == user_id)
        if filters.status:
            conditions.append(Order.status == filters.status.value)
        if filters.payment_status:
            conditions.append(Order.payment_status == filters.payment_status.value)
        if filters.search:
            pattern = f"%{escape_like(filters.search.lower())}%"
            conditions.append(or_(
                func.lower(Order.order_number).like(pattern, escape=LIKE_ESCAPE),
                func.lower(Order.customer_email).like(pattern, escape=LIKE_ESCAPE),
                func.lower(Order.customer_name).like(pattern, escape=LIKE_ESCAPE),
            ))

        count_result = await db.execute(select(func.count(Order.id)).where(*conditions))
        total = count_result.scalar_one()

        result = await db.execute(
            select(Order)
            .where(*conditions)
            .options(selectinload(Order.items))
            .execution_options(populate_existing=True)
            .order_by(Order.created_at.desc(), Order.order_number.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all()), total
