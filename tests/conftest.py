"""Shared pytest fixtures for the order core tests."""
import os

# Configuration is read at import time; set it before any app module loads.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("TELEMETRY_ENABLED", "false")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")
os.environ.setdefault("INTERNAL_API_KEY", "test-internal-key")

from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import async_sessionmaker

from shared.config.database import build_engine, create_schema
from shared.security.identity import CurrentUser
from services.product_service.models import Product
from services.order_service.models import Order, OrderItem  # noqa: F401
from services.payment_service.models import PaymentRecord
from services.payment_service.verifier import PaymentVerifier
from services.order_service.service import OrderService
from services.product_service.repository import ProductRepository


class FakeGateway:
    """Stands in for PayPal / the QR gateway: maps gateway order id -> status."""

    completed_statuses = frozenset({"COMPLETED"})

    def __init__(self, statuses=None, error=None):
        self.statuses = dict(statuses or {})
        self.error = error
        self.calls = []

    async def is_completed(self, gateway_order_id):
        self.calls.append(gateway_order_id)
        if self.error is not None:
            raise self.error
        return self.statuses.get(gateway_order_id, "").upper() in self.completed_statuses


@pytest.fixture
async def engine(tmp_path):
    # File-backed so concurrent sessions see each other's commits.
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'storefront.db'}")
    async with engine.begin() as conn:
        await create_schema(conn)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def add_product(session_factory):
    async def _add(product_id, price="10.00", stock=None, is_active=True, name=None, **fields):
        async with session_factory() as session:
            product = Product(
                id=product_id,
                name=name or f"Product {product_id}",
                price=Decimal(price),
                stock=stock,
                is_active=is_active,
                type=fields.pop("type", "subscription"),
                duration=fields.pop("duration", "1 month"),
                features=fields.pop("features", ["HD"]),
                image=fields.pop("image", f"/img/{product_id}.png"),
                **fields,
            )
            session.add(product)
            await session.commit()
            return product
    return _add


@pytest.fixture
def add_payment(session_factory):
    async def _add(reference, gateway_order_id, amount="100.00", method="paypal", is_paid=True, order_id=None,
                   currency="USD"):
        async with session_factory() as session:
            payment = PaymentRecord(
                payment_reference=reference,
                gateway_order_id=gateway_order_id,
                payment_method=method,
                amount=Decimal(amount),
                currency=currency,
                status="completed" if is_paid else "pending",
                is_paid=is_paid,
                order_id=order_id,
            )
            session.add(payment)
            await session.commit()
            return payment
    return _add


@pytest.fixture
def read_stock(session_factory):
    async def _read(product_id):
        async with session_factory() as session:
            return await ProductRepository.get_stock(session, product_id)
    return _read


@pytest.fixture
def count_rows(session_factory):
    async def _count(model):
        async with session_factory() as session:
            result = await session.execute(select(func.count()).select_from(model))
            return result.scalar_one()
    return _count


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def gateway_factory():
    return FakeGateway


@pytest.fixture
def order_service(gateway):
    verifier = PaymentVerifier(gateways={"paypal": gateway, "qr_code": gateway})
    return OrderService(verifier=verifier)


@pytest.fixture
def customer():
    return CurrentUser(id="user-1", role="customer", email="ana@example.com", name="Ana Lima")


@pytest.fixture
def other_customer():
    return CurrentUser(id="user-2", role="customer", email="bo@example.com", name="Bo Chen")


@pytest.fixture
def admin():
    return CurrentUser(id="admin-1", role="admin", email="ops@example.com", name="Ops")
