from fastapi import FastAPI

from shared.config.database import engine, create_schema
from shared.errors import register_error_handlers
from shared.observability.setup import setup_observability

from .models import PaymentRecord  # noqa: F401 - registers model with SQLAlchemy Base
from .router import router, public_router


payment_app = FastAPI(title="Payment Service", version="2.0.0")

setup_observability(payment_app, "payment_service")
register_error_handlers(payment_app)

payment_app.include_router(public_router)
payment_app.include_router(router)

@payment_app.on_event("startup")
async def startup_event():
    async with engine.begin() as conn:
        await create_schema(conn)
