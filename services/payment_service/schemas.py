from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .models import PaymentMethod


class PaymentIntentCreate(BaseModel):
    payment_method: PaymentMethod
    gateway_order_id: str = Field(min_length=1, max_length=128)
    amount: Decimal = Field(gt=0, max_digits=10, decimal_places=2)
    currency: str = Field(default="USD", min_length=3, max_length=3)


class PaymentResponse(BaseModel):
    payment_reference: str
    gateway_order_id: str
    payment_method: str
    amount: Decimal
    currency: str
    status: str
    is_paid: bool
    order_id: Optional[str]

    model_config = ConfigDict(from_attributes=True)
