"""
Read side of the order core, plus the administrative status update.

Everything returned here comes from the captured order rows; a line item
is never re-joined against the live catalog.
"""
import math
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import transaction
from shared.errors import Forbidden, InvalidStatusTransition, NotFound
from shared.security.identity import CurrentUser
from .models import ORDER_TRANSITIONS, PAYMENT_TRANSITIONS, Order, OrderStatus, PaymentStatus, utcnow
from .repository import OrderRepository
from .schemas import OrderFilters, OrderListResponse, OrderResponse, OrderStatusUpdate, Pagination

logger = structlog.get_logger(__name__)

MAX_PAGE_SIZE = 100


def _check_transition(kind: str, current, target, allowed: dict) -> None:
    if current == target:
        return
    if target not in allowed[current]:
        raise InvalidStatusTransition(
            f"Cannot move {kind} from {current.value} to {target.value}",
            current=current.value,
            requested=target.value,
        )


class OrderQueryService:

    @staticmethod
    async def list_orders(
        db: AsyncSession,
        requester: CurrentUser,
        filters: Optional[OrderFilters] = None,
        page: int = 1,
        limit: int = 10,
        all_owners: bool = False,
    ) -> OrderListResponse:
        if all_owners and not requester.is_admin:
            raise Forbidden("Admin access required")

        filters = filters or OrderFilters()
        page = max(page, 1)
        limit = min(max(limit, 1), MAX_PAGE_SIZE)

        orders, total = await OrderRepository.list_orders(
            db,
            user_id=None if all_owners else requester.id,
            filters=filters,
            limit=limit,
            offset=(page - 1) * limit,
        )
        total_pages = math.ceil(total / limit) if total else 0

        return OrderListResponse(
            orders=[OrderResponse.model_validate(order) for order in orders],
            pagination=Pagination(
                current_page=page,
                total_pages=total_pages,
                total_items=total,
                items_per_page=limit,
                has_next=page < total_pages,
                has_prev=page > 1,
            ),
        )

    @staticmethod
    async def get_order(db: AsyncSession, order_id: str, requester: Optional[CurrentUser]) -> Order:
        """
        Owner or admin only. A missing order is NotFound; an existing order
        that belongs to someone else is Forbidden, for every caller.
        """
        order = await OrderRepository.get_order(db, order_id)
        if order is None:
            raise NotFound("Order not found")
        if requester is None:
            raise Forbidden("Sign in to view this order")
        if not requester.is_admin and order.user_id != requester.id:
            raise Forbidden("You do not have access to this order")
        return order

    @staticmethod
    async def update_order_status(
        db: AsyncSession, order_id: str, patch: OrderStatusUpdate, requester: CurrentUser
    ) -> Order:
        if not requester.is_admin:
            raise Forbidden("Admin access required")

        async with transaction(db):
            order = await OrderRepository.get_order(db, order_id, for_update=True)
            if order is None:
                raise NotFound("Order not found")

            current_status = OrderStatus(order.status)
            current_payment = PaymentStatus(order.payment_status)

            if patch.status is not None:
                _check_transition("status", current_status, patch.status, ORDER_TRANSITIONS)
                if patch.status == OrderStatus.COMPLETED and current_status != OrderStatus.COMPLETED:
                    order.delivered_at = utcnow()
                order.status = patch.status.value

            if patch.payment_status is not None:
                _check_transition("payment status", current_payment, patch.payment_status, PAYMENT_TRANSITIONS)
                order.payment_status = patch.payment_status.value

            # notes may be cleared explicitly with null
            if "notes" in patch.model_fields_set:
                order.notes = patch.notes

        logger.info(
            "order_status_updated",
            order_id=order_id,
            status=order.status,
            payment_status=order.payment_status,
            admin_id=requester.id,
        )
        return await OrderQueryService.get_order(db, order_id, requester)
