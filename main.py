from fastapi import FastAPI
from shared.config.database import engine, create_schema

# IMPORTANT: import models so they register with Base
from services.product_service import models as product_models  # noqa: F401
from services.order_service import models as order_models  # noqa: F401
from services.payment_service import models as payment_models  # noqa: F401

from services.order_service.main import order_app
from services.payment_service.main import payment_app

app = FastAPI(title="Storefront Order Core")

@app.on_event("startup")
async def startup_event():
    # Mounted sub-apps do not get their own startup events
    async with engine.begin() as conn:
        await create_schema(conn)

@app.get("/health")
async def health_check():
    return {"service": "storefront", "status": "running"}

app.mount("/orders", order_app)
app.mount("/payments", payment_app)
