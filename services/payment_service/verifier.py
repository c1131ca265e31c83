import enum
from typing import Dict, Optional

import httpx
import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from shared.observability import ecomm_payment_verification_total
from .gateway import PaymentGateway, default_gateways
from .repository import PaymentRepository

logger = structlog.get_logger(__name__)


class VerificationResult(str, enum.Enum):
    VERIFIED = "verified"
    NOT_FOUND = "not_found"
    NOT_COMPLETED = "not_completed"


class PaymentVerifier:
    """
    Confirms that an out-of-band payment was captured.

    Two checks, both required: our PaymentRecord must exist and be flagged
    paid, and the gateway must still report the external session as
    completed. Runs before the order transaction opens and leaves no
    transaction behind while it waits on the network.
    """

    def __init__(self, gateways: Optional[Dict[str, PaymentGateway]] = None):
        self.gateways = gateways if gateways is not None else default_gateways()

    async def verify(self, db: AsyncSession, payment_reference: str, payment_method: str) -> VerificationResult:
        result = await self._verify(db, payment_reference, str(payment_method))
        ecomm_payment_verification_total.labels(method=str(payment_method), result=result.value).inc()
        logger.info(
            "payment_verification",
            payment_reference=payment_reference,
            method=str(payment_method),
            result=result.value,
        )
        return result

    async def _verify(self, db: AsyncSession, payment_reference: str, payment_method: str) -> VerificationResult:
        if not payment_reference:
            return VerificationResult.NOT_FOUND

        record = await PaymentRepository.get_by_reference(db, payment_reference)
        if record is None or record.payment_method != payment_method or not record.is_paid:
            await db.rollback()
            return VerificationResult.NOT_FOUND

        gateway_order_id = record.gateway_order_id
        # End the read transaction before the (slow) gateway round trip.
        await db.rollback()

        gateway = self.gateways.get(payment_method)
        if gateway is None:
            logger.error("payment_gateway_missing", method=payment_method)
            return VerificationResult.NOT_COMPLETED

        try:
            completed = await gateway.is_completed(gateway_order_id)
        except (httpx.HTTPError, KeyError, ValueError) as e:
            logger.warning(
                "payment_gateway_error",
                method=payment_method,
                gateway_order_id=gateway_order_id,
                error=str(e),
            )
            return VerificationResult.NOT_COMPLETED

        return VerificationResult.VERIFIED if completed else VerificationResult.NOT_COMPLETED
