import uuid

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from shared.errors import NotFound
from .models import PaymentRecord
from .repository import PaymentRepository
from .schemas import PaymentIntentCreate

logger = structlog.get_logger(__name__)


class PaymentService:
    """Payment intents: created before redirecting to a gateway, flagged paid by its callback."""

    @staticmethod
    async def create_intent(db: AsyncSession, data: PaymentIntentCreate) -> PaymentRecord:
        payment = PaymentRecord(
            payment_reference=f"pay_{uuid.uuid4().hex}",
            gateway_order_id=data.gateway_order_id,
            payment_method=data.payment_method.value,
            amount=data.amount,
            currency=data.currency.upper(),
            status="pending",
            is_paid=False,
        )
        payment = await PaymentRepository.create_payment(db, payment)
        logger.info("payment_intent_created", payment_reference=payment.payment_reference,
                    method=payment.payment_method)
        return payment

    @staticmethod
    async def get_payment(db: AsyncSession, payment_reference: str) -> PaymentRecord:
        payment = await PaymentRepository.get_by_reference(db, payment_reference)
        if payment is None:
            raise NotFound("Payment not found")
        return payment

    @staticmethod
    async def confirm_payment(db: AsyncSession, payment_reference: str) -> PaymentRecord:
        payment = await PaymentService.get_payment(db, payment_reference)
        if payment.is_paid:
            return payment
        payment = await PaymentRepository.mark_paid(db, payment)
        logger.info("payment_confirmed", payment_reference=payment_reference)
        return payment
