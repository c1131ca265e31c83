import os
import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

load_dotenv()

logger = logging.getLogger(__name__)

DB_USER = os.getenv("POSTGRES_USER", "postgres")
DB_PASSWORD = os.getenv("POSTGRES_PASSWORD", "postgres")
DB_HOST = os.getenv("POSTGRES_HOST", "localhost") # In Docker, this will be 'postgres'
DB_PORT = os.getenv("POSTGRES_PORT", "5433")
DB_NAME = os.getenv("POSTGRES_DB", "storefront")

DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"postgresql+asyncpg://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}",
)
DB_ECHO = os.getenv("DB_ECHO", "false").lower() == "true"

# Each service owns a Postgres schema; backends without schemas collapse them.
SERVICE_SCHEMAS = ("product_schema", "order_schema", "payment_schema")


def build_engine(url: str = DATABASE_URL, **kwargs):
    """Creates an async engine, flattening service schemas on SQLite."""
    engine = create_async_engine(url, echo=DB_ECHO, **kwargs)
    if engine.dialect.name == "sqlite":
        engine = engine.execution_options(
            schema_translate_map={schema: None for schema in SERVICE_SCHEMAS}
        )
    return engine


engine = build_engine()

AsyncSessionLocal = async_sessionmaker(engine, expire_on_commit=False)

Base = declarative_base()


async def get_db():
    async with AsyncSessionLocal() as session:
        yield session


@asynccontextmanager
async def transaction(db: AsyncSession):
    """
    Explicit write scope: commits on clean exit, rolls back on any exception.
    Every ledger and insert call made inside shares this one transaction.
    """
    if db.in_transaction():
        # Reads done earlier in the request opened an implicit transaction.
        await db.rollback()
    try:
        async with db.begin():
            yield db
    except Exception as exc:
        logger.info(f"Transaction rolled back: {type(exc).__name__}")
        raise


async def create_schema(conn) -> None:
    """Startup DDL: service schemas (Postgres only), then every registered table."""
    if conn.dialect.name == "postgresql":
        for schema in SERVICE_SCHEMAS:
            await conn.execute(text(f"CREATE SCHEMA IF NOT EXISTS {schema}"))
    await conn.run_sync(Base.metadata.create_all)
