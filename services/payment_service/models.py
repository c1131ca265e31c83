import enum
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Integer, Numeric, String

from shared.config.database import Base


def utcnow():
    return datetime.now(timezone.utc)


class PaymentMethod(str, enum.Enum):
    PAYPAL = "paypal"
    QR_CODE = "qr_code"
    CARD = "card"
    OTHER = "other"

    @property
    def is_out_of_band(self) -> bool:
        """Settled by a separate gateway confirmation rather than at checkout."""
        return self in OUT_OF_BAND_METHODS


OUT_OF_BAND_METHODS = frozenset({PaymentMethod.PAYPAL, PaymentMethod.QR_CODE})


class PaymentRecord(Base):
    __tablename__ = "payments"
    __table_args__ = {"schema": "payment_schema"}

    id = Column(Integer, primary_key=True, autoincrement=True)
    payment_reference = Column(String(64), unique=True, nullable=False, index=True)
    gateway_order_id = Column(String(128), unique=True, nullable=False) # external session id
    payment_method = Column(String(32), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    status = Column(String(20), nullable=False, default="pending") # pending, completed, failed, refunded
    is_paid = Column(Boolean, nullable=False, default=False)
    order_id = Column(String(36), nullable=True, index=True) # weak reference, set when redeemed
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
