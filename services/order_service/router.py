from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import get_db
from shared.security import (
    ORDER_RATE_LIMIT,
    CurrentUser,
    get_current_user,
    get_optional_user,
    limiter,
    require_admin,
)
from .models import OrderStatus, PaymentStatus
from .queries import OrderQueryService
from .schemas import CreateOrderRequest, OrderFilters, OrderListResponse, OrderResponse, OrderStatusUpdate
from .service import OrderService

router = APIRouter()
public_router = APIRouter()  # For any public endpoints (e.g. health check)

_order_service = OrderService()


def get_order_service() -> OrderService:
    return _order_service


@public_router.get("/health", include_in_schema=False)
async def health_check():
    return {"service": "order", "status": "running"}


@router.post("/", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(ORDER_RATE_LIMIT)
async def create_order(
    request: Request,                          # REQUIRED: slowapi needs this to check IP/Headers
    payload: CreateOrderRequest,
    idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key", max_length=128),
    user: Optional[CurrentUser] = Depends(get_optional_user),  # None = guest checkout
    db: AsyncSession = Depends(get_db),
    service: OrderService = Depends(get_order_service),
):
    return await service.create_order(db, payload, user, idempotency_key=idempotency_key)


def _filters(
    status: Optional[OrderStatus] = Query(default=None),
    payment_status: Optional[PaymentStatus] = Query(default=None),
    search: Optional[str] = Query(default=None, max_length=100),
) -> OrderFilters:
    return OrderFilters(status=status, payment_status=payment_status, search=search)


@router.get("/user", response_model=OrderListResponse)
async def list_my_orders(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    filters: OrderFilters = Depends(_filters),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await OrderQueryService.list_orders(db, user, filters, page=page, limit=limit)


@router.get("/", response_model=OrderListResponse)
async def list_all_orders(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    filters: OrderFilters = Depends(_filters),
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await OrderQueryService.list_orders(db, admin, filters, page=page, limit=limit, all_owners=True)


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await OrderQueryService.get_order(db, order_id, user)


@router.put("/{order_id}/status", response_model=OrderResponse)
async def update_order_status(
    order_id: str,
    patch: OrderStatusUpdate,
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await OrderQueryService.update_order_status(db, order_id, patch, admin)


# Compensation path: the only caller of InventoryLedger.release
@router.patch("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(
    order_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    service: OrderService = Depends(get_order_service),
):
    return await service.cancel_order(db, order_id, user)
