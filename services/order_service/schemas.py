from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from services.payment_service.models import PaymentMethod
from .models import OrderStatus, PaymentStatus


class CartItem(BaseModel):
    product_id: str = Field(min_length=1, max_length=64)
    quantity: int = Field(ge=1, le=1000)


class ShippingInfo(BaseModel):
    """Contact details from checkout. Digital goods: address is informational."""

    email: Optional[EmailStr] = None
    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    phone: Optional[str] = Field(default=None, max_length=40)
    address: Optional[str] = Field(default=None, max_length=500)
    city: Optional[str] = Field(default=None, max_length=100)
    country: Optional[str] = Field(default=None, max_length=100)

    @property
    def full_name(self) -> Optional[str]:
        name = " ".join(part for part in (self.first_name, self.last_name) if part)
        return name or None


class CreateOrderRequest(BaseModel):
    # Cart emptiness is reported as the EmptyCart domain error, not a 422.
    items: List[CartItem]
    payment_method: PaymentMethod
    payment_reference: Optional[str] = Field(default=None, max_length=64)
    shipping_info: Optional[ShippingInfo] = None
    notes: Optional[str] = Field(default=None, max_length=2000)

    @model_validator(mode="after")
    def reference_required_for_out_of_band(self):
        if self.payment_method.is_out_of_band and not self.payment_reference:
            raise ValueError(f"payment_reference is required for {self.payment_method.value}")
        return self


class OrderItemResponse(BaseModel):
    id: str
    product_id: str
    quantity: int
    price: Decimal
    product_name: str
    product_image: Optional[str]
    product_metadata: Optional[dict]

    model_config = ConfigDict(from_attributes=True)


class OrderResponse(BaseModel):
    id: str
    order_number: str
    user_id: Optional[str]
    total_amount: Decimal
    currency: str
    status: OrderStatus
    payment_status: PaymentStatus
    payment_method: Optional[str]
    payment_reference: Optional[str]
    customer_email: str
    customer_name: str
    shipping_info: Optional[dict]
    notes: Optional[str]
    delivered_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime
    items: List[OrderItemResponse] = []

    model_config = ConfigDict(from_attributes=True)


class Pagination(BaseModel):
    current_page: int
    total_pages: int
    total_items: int
    items_per_page: int
    has_next: bool
    has_prev: bool


class OrderListResponse(BaseModel):
    orders: List[OrderResponse]
    pagination: Pagination


class OrderFilters(BaseModel):
    status: Optional[OrderStatus] = None
    payment_status: Optional[PaymentStatus] = None
    search: Optional[str] = Field(default=None, max_length=100)

    @field_validator("search")
    @classmethod
    def blank_search_is_none(cls, value):
        if value is not None and not value.strip():
            return None
        return value.strip() if value else value


class OrderStatusUpdate(BaseModel):
    status: Optional[OrderStatus] = None
    payment_status: Optional[PaymentStatus] = None
    notes: Optional[str] = Field(default=None, max_length=2000)
