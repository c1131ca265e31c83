import os
from collections import OrderedDict
from decimal import Decimal
from typing import List, Optional, Tuple

import structlog
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from services.payment_service.repository import PaymentRepository
from services.payment_service.verifier import PaymentVerifier, VerificationResult
from services.product_service.inventory import InventoryLedger
from services.product_service.pricing import PricingSnapshot
from shared.config.database import transaction
from shared.errors import (
    EmptyCart,
    Forbidden,
    InternalError,
    InvalidStatusTransition,
    NotFound,
    PaymentNotVerified,
    StoreError,
)
from shared.observability import (
    ecomm_checkout_duration_seconds,
    ecomm_checkout_total,
    ecomm_order_cancellations_total,
)
from shared.security.identity import CurrentUser
from .models import Order, OrderItem, OrderStatus, PaymentStatus
from .repository import OrderRepository
from .schemas import CartItem, CreateOrderRequest, ShippingInfo

logger = structlog.get_logger(__name__)

GUEST_CUSTOMER_EMAIL = os.getenv("GUEST_CUSTOMER_EMAIL", "guest@storefront.invalid")
GUEST_CUSTOMER_NAME = "Guest Customer"
CENT = Decimal("0.01")
ORDER_CURRENCY = "USD"

CANCELLABLE_STATUSES = {OrderStatus.PENDING.value, OrderStatus.PROCESSING.value}


def merge_cart(items: List[CartItem]) -> List[Tuple[str, int]]:
    """Sums duplicate product lines and sorts by product id.

    Ascending id is the lock order for every transaction that touches
    product rows, so concurrent multi-item orders cannot deadlock.
    """
    merged = OrderedDict()
    for item in items:
        merged[item.product_id] = merged.get(item.product_id, 0) + item.quantity
    return sorted(merged.items())


def resolve_customer(shipping_info: Optional[ShippingInfo], user: Optional[CurrentUser]) -> Tuple[str, str]:
    """Explicit checkout details first, then the signed-in profile, then a guest placeholder."""
    email = shipping_info.email if shipping_info else None
    name = shipping_info.full_name if shipping_info else None
    if user is not None:
        email = email or user.email
        name = name or user.name
    return email or GUEST_CUSTOMER_EMAIL, name or GUEST_CUSTOMER_NAME


class OrderService:
    """
    Order Transaction Coordinator.

    create_order is the only write path that moves stock down. Payment
    verification happens first, with no transaction open; then one
    transaction resolves prices, reserves stock, inserts the order and its
    lines, and binds the payment. Any failure in there rolls all of it back.
    """

    def __init__(self, verifier: Optional[PaymentVerifier] = None):
        self.verifier = verifier or PaymentVerifier()

    async def create_order(
        self,
        db: AsyncSession,
        request: CreateOrderRequest,
        user: Optional[CurrentUser] = None,
        idempotency_key: Optional[str] = None,
    ) -> Order:
        with ecomm_checkout_duration_seconds.time():
            try:
                order, replayed = await self._create_order(db, request, user, idempotency_key)
            except StoreError as e:
                ecomm_checkout_total.labels(status="failed").inc()
                logger.info("checkout_failed", code=e.code, user_id=user.id if user else None)
                raise

        ecomm_checkout_total.labels(status="replayed" if replayed else "success").inc()
        return order

    async def _create_order(
        self,
        db: AsyncSession,
        request: CreateOrderRequest,
        user: Optional[CurrentUser],
        idempotency_key: Optional[str],
    ) -> Tuple[Order, bool]:
        # 1. Fail fast, nothing written yet
        if not request.items:
            raise EmptyCart()
        lines = merge_cart(request.items)
        user_id = user.id if user else None
        if user_id is None and idempotency_key:
            # Guests share user_id NULL, so their keys cannot identify a caller.
            logger.info("guest_idempotency_key_ignored", idempotency_key=idempotency_key)
            idempotency_key = None

        if idempotency_key:
            existing = await OrderRepository.get_by_idempotency_key(db, user_id, idempotency_key)
            if existing is not None:
                logger.info("checkout_replayed", order_id=existing.id, idempotency_key=idempotency_key)
                return existing, True

        # 2. Out-of-band payments are confirmed before any lock is taken
        payment_verified = False
        if request.payment_method.is_out_of_band:
            result = await self.verifier.verify(db, request.payment_reference, request.payment_method.value)
            if result != VerificationResult.VERIFIED:
                raise PaymentNotVerified(
                    f"Payment {request.payment_reference} could not be verified",
                    reason=result.value,
                )
            payment_verified = True

        customer_email, customer_name = resolve_customer(request.shipping_info, user)

        # 3-6. One atomic unit
        try:
            async with transaction(db):
                total_amount = Decimal("0")
                items = []
                for product_id, quantity in lines:
                    snapshot = await PricingSnapshot.resolve(db, product_id, lock=True)
                    await InventoryLedger.check_and_reserve(db, product_id, quantity)
                    total_amount += snapshot.price * quantity
                    items.append(OrderItem(
                        product_id=snapshot.product_id,
                        quantity=quantity,
                        price=snapshot.price,
                        product_name=snapshot.name,
                        product_image=snapshot.image,
                        product_metadata=snapshot.metadata,
                    ))
                total_amount = total_amount.quantize(CENT)

                payment = None
                if payment_verified:
                    payment = await self._claim_payment(db, request.payment_reference, total_amount, ORDER_CURRENCY)

                order = Order(
                    user_id=user_id,
                    total_amount=total_amount,
                    currency=ORDER_CURRENCY,
                    status=(OrderStatus.PROCESSING if payment_verified else OrderStatus.PENDING).value,
                    payment_status=(PaymentStatus.PAID if payment_verified else PaymentStatus.PENDING).value,
                    payment_method=request.payment_method.value,
                    payment_reference=request.payment_reference,
                    idempotency_key=idempotency_key,
                    customer_email=customer_email,
                    customer_name=customer_name,
                    shipping_info=request.shipping_info.model_dump(mode="json") if request.shipping_info else None,
                    notes=request.notes,
                )
                await OrderRepository.add_order(db, order, items)
                if payment is not None:
                    payment.order_id = order.id
        except StoreError:
            raise
        except IntegrityError as e:
            # Same idempotency key committed by a concurrent request
            if idempotency_key:
                existing = await OrderRepository.get_by_idempotency_key(db, user_id, idempotency_key)
                if existing is not None:
                    return existing, True
            logger.error("checkout_integrity_error", error=str(e.orig))
            raise InternalError() from e
        except SQLAlchemyError as e:
            logger.error("checkout_persistence_error", error=str(e))
            raise InternalError() from e

        logger.info(
            "order_created",
            order_id=order.id,
            order_number=order.order_number,
            user_id=user_id,
            total_amount=str(total_amount),
            items=len(items),
            payment_method=request.payment_method.value,
        )

        # 7. Read model, outside the write transaction
        return await OrderRepository.get_order(db, order.id), False

    @staticmethod
    async def _claim_payment(db: AsyncSession, payment_reference: str, total_amount: Decimal, currency: str):
        """Locks the verified payment and binds it to exactly one order."""
        payment = await PaymentRepository.get_by_reference(db, payment_reference, for_update=True)
        if payment is None or not payment.is_paid:
            raise PaymentNotVerified(f"Payment {payment_reference} could not be verified", reason="not_found")
        if payment.order_id is not None:
            raise PaymentNotVerified(f"Payment {payment_reference} was already used", reason="already_redeemed")
        if (payment.currency or "").upper() != currency:
            raise PaymentNotVerified(
                f"Payment {payment_reference} was captured in {payment.currency}",
                reason="currency_mismatch",
                captured_currency=payment.currency,
                currency=currency,
            )
        if Decimal(payment.amount) < total_amount:
            raise PaymentNotVerified(
                f"Payment {payment_reference} does not cover the order total",
                reason="amount_mismatch",
                captured=Decimal(payment.amount),
                total=total_amount,
            )
        return payment

    async def cancel_order(self, db: AsyncSession, order_id: str, requester: Optional[CurrentUser]) -> Order:
        """
        Cancels a pending/processing order and gives its stock back, in one
        transaction. Owner or admin only.
        """
        async with transaction(db):
            order = await OrderRepository.get_order(db, order_id, for_update=True)
            if order is None:
                raise NotFound("Order not found")
            if requester is None or (not requester.is_admin and order.user_id != requester.id):
                raise Forbidden("You do not have access to this order")
            if order.status not in CANCELLABLE_STATUSES:
                raise InvalidStatusTransition(
                    f"Cannot cancel an order that is {order.status}",
                    current=order.status,
                    requested=OrderStatus.CANCELLED.value,
                )

            for item in sorted(order.items, key=lambda i: i.product_id):
                await InventoryLedger.release(db, item.product_id, item.quantity)
            order.status = OrderStatus.CANCELLED.value
            refund_due = order.payment_status == PaymentStatus.PAID.value
            if refund_due:
                order.payment_status = PaymentStatus.REFUNDED.value

        ecomm_order_cancellations_total.inc()
        logger.info("order_cancelled", order_id=order_id, by=requester.id)
        if refund_due:
            # Gateway refunds are handled outside the order core
            logger.info("refund_intent", order_id=order_id, payment_reference=order.payment_reference)

        return await OrderRepository.get_order(db, order_id)
