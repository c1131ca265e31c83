from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import PaymentRecord


class PaymentRepository:
    @staticmethod
    async def create_payment(db: AsyncSession, payment: PaymentRecord) -> PaymentRecord:
        db.add(payment)
        await db.commit()
        await db.refresh(payment)
        return payment

    @staticmethod
    async def get_by_reference(
        db: AsyncSession, payment_reference: str, for_update: bool = False
    ) -> Optional[PaymentRecord]:
        stmt = (
            select(PaymentRecord)
            .where(PaymentRecord.payment_reference == payment_reference)
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await db.execute(stmt)
        return result.scalars().first()

    @staticmethod
    async def mark_paid(db: AsyncSession, payment: PaymentRecord) -> PaymentRecord:
        payment.is_paid = True
        payment.status = "completed"
        await db.commit()
        await db.refresh(payment)
        return payment
