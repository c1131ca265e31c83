"""
Error taxonomy for the order core.

Every failure the core surfaces is a StoreError carrying a stable code,
a human-readable message and the HTTP status it maps to. Routers never
build error bodies by hand; the handler registered here renders them.
"""
import logging
from decimal import Decimal
from typing import Any, Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class StoreError(Exception):
    code = "store_error"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Request could not be processed"
    headers: Optional[dict] = None

    def __init__(self, message: Optional[str] = None, **details: Any):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> dict:
        body = {"code": self.code, "message": self.message}
        for key, value in self.details.items():
            body[key] = str(value) if isinstance(value, Decimal) else value
        return {"error": body}


class EmptyCart(StoreError):
    code = "empty_cart"
    default_message = "Order must contain at least one item"


class ProductUnavailable(StoreError):
    code = "product_unavailable"

    def __init__(self, product_id: str):
        super().__init__(
            f"Product {product_id} not found or inactive", product_id=product_id
        )
        self.product_id = product_id


class InsufficientStock(StoreError):
    code = "insufficient_stock"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, product_id: str, requested: int, available: Optional[int]):
        super().__init__(
            f"Insufficient stock for product {product_id}",
            product_id=product_id,
            requested=requested,
            available=available,
        )
        self.product_id = product_id
        self.requested = requested
        self.available = available


class PaymentNotVerified(StoreError):
    code = "payment_not_verified"
    status_code = status.HTTP_402_PAYMENT_REQUIRED
    default_message = "Payment could not be verified"


class Unauthorized(StoreError):
    code = "unauthorized"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Could not validate credentials"
    headers = {"WWW-Authenticate": "Bearer"}


class Forbidden(StoreError):
    code = "forbidden"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "You do not have access to this resource"


class NotFound(StoreError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Resource not found"


class InvalidStatusTransition(StoreError):
    code = "invalid_status_transition"
    status_code = status.HTTP_409_CONFLICT


class InternalError(StoreError):
    code = "internal_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Unexpected server error"


async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{exc.code} on {request.method} {request.url.path}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=exc.headers)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StoreError, store_error_handler)
