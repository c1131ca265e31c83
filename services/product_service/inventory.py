import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from shared.errors import InsufficientStock, ProductUnavailable
from shared.observability import ecomm_stock_reservation_failures_total
from .repository import ProductRepository

logger = structlog.get_logger(__name__)


class InventoryLedger:
    """
    Stock movements for tracked products. Both operations must run inside
    the caller's open transaction and never commit on their own.

    The order coordinator locks each product row (SELECT ... FOR UPDATE) in
    ascending id order before reserving; the guarded UPDATE here is the
    compare-and-swap that still holds on backends without row locks.
    """

    @staticmethod
    async def check_and_reserve(db: AsyncSession, product_id: str, quantity: int) -> None:
        if quantity < 1:
            raise ValueError("Reservation quantity must be at least 1")

        stock = await ProductRepository.get_stock(db, product_id)
        if stock is None:
            # NULL stock: unlimited digital good. A missing row also reads
            # as None, so confirm the product actually exists.
            if await ProductRepository.get_product_by_id(db, product_id) is None:
                raise ProductUnavailable(product_id)
            return

        if not await ProductRepository.decrement_stock(db, product_id, quantity):
            available = await ProductRepository.get_stock(db, product_id)
            ecomm_stock_reservation_failures_total.labels(product_id=product_id).inc()
            logger.info(
                "stock_reservation_rejected",
                product_id=product_id,
                requested=quantity,
                available=available,
            )
            raise InsufficientStock(product_id, requested=quantity, available=available)

    @staticmethod
    async def release(db: AsyncSession, product_id: str, quantity: int) -> None:
        """Returns stock to a tracked product. Only order cancellation calls this."""
        if quantity < 1:
            raise ValueError("Release quantity must be at least 1")

        released = await ProductRepository.increment_stock(db, product_id, quantity)
        if released:
            logger.info("stock_released", product_id=product_id, quantity=quantity)
