"""
Payment intent endpoints. Called by trusted backends (checkout frontend
server, gateway webhooks), so every route sits behind X-Internal-API-Key.
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import get_db
from shared.security.dependencies import verify_internal_api_key

from .schemas import PaymentIntentCreate, PaymentResponse
from .service import PaymentService

router = APIRouter(dependencies=[Depends(verify_internal_api_key)])
public_router = APIRouter()  # For any public endpoints (e.g. health check)

@public_router.get("/health", include_in_schema=False)
async def health_check():
    return {"service": "payment", "status": "running"}


@router.post("/", response_model=PaymentResponse, status_code=status.HTTP_201_CREATED)
async def create_payment_intent(
    payment: PaymentIntentCreate, db: AsyncSession = Depends(get_db)
):
    return await PaymentService.create_intent(db, payment)


@router.get("/{payment_reference}", response_model=PaymentResponse)
async def get_payment(payment_reference: str, db: AsyncSession = Depends(get_db)):
    return await PaymentService.get_payment(db, payment_reference)


@router.post("/{payment_reference}/confirm", response_model=PaymentResponse)
async def confirm_payment(payment_reference: str, db: AsyncSession = Depends(get_db)):
    return await PaymentService.confirm_payment(db, payment_reference)
