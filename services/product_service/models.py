from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Integer, JSON, Numeric, String

from shared.config.database import Base


def utcnow():
    return datetime.now(timezone.utc)


class Product(Base):
    """Catalog row. Owned by the catalog; the order core only reads it and
    moves `stock` through the inventory ledger."""

    __tablename__ = "products"
    __table_args__ = {"schema": "product_schema"}

    id = Column(String(64), primary_key=True)
    name = Column(String(200), nullable=False)
    slug = Column(String(200), unique=True, nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    stock = Column(Integer, nullable=True, default=None) # NULL = unlimited digital good
    is_active = Column(Boolean, nullable=False, default=True)
    type = Column(String(32), nullable=False, default="subscription") # subscription, giftcard
    duration = Column(String(64), nullable=True) # e.g. "1 month", "1 year"
    features = Column(JSON, nullable=True, default=list)
    image = Column(String(500), nullable=True)
    product_metadata = Column("metadata", JSON, nullable=True, default=dict)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
