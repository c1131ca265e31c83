from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from shared.errors import ProductUnavailable
from .repository import ProductRepository


@dataclass(frozen=True)
class PriceSnapshot:
    """What an order line captures from the catalog at order time."""

    product_id: str
    price: Decimal
    name: str
    image: Optional[str]
    metadata: dict = field(default_factory=dict)
    stock: Optional[int] = None

    @property
    def tracks_stock(self) -> bool:
        return self.stock is not None


class PricingSnapshot:

    @staticmethod
    async def resolve(db: AsyncSession, product_id: str, lock: bool = False) -> PriceSnapshot:
        """
        Reads the live product and freezes price/name/image/metadata.

        Never cached: inside the order transaction it is called with
        lock=True so the price read and the stock reservation see the
        same row version.
        """
        product = await ProductRepository.get_product_by_id(db, product_id, for_update=lock)
        if product is None or not product.is_active:
            raise ProductUnavailable(product_id)

        return PriceSnapshot(
            product_id=product.id,
            price=Decimal(product.price),
            name=product.name,
            image=product.image,
            metadata={
                "type": product.type,
                "duration": product.duration,
                "features": list(product.features or []),
            },
            stock=product.stock,
        )
