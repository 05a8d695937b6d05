"""
Pytest configuration and fixtures for fulfillment tests.

Persistence tests run against a throwaway SQLite file (aiosqlite) so the
conditional UPDATEs and rollbacks behave like they do in production.
"""
import os

import pytest
import pytest_asyncio

# Set test environment before importing app modules
os.environ["ENVIRONMENT"] = "development"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["DEBUG"] = "false"

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402

import fulfillment.models  # noqa: E402, F401
from fulfillment.core.database import Base  # noqa: E402
from fulfillment.core.monitoring import metrics  # noqa: E402
from fulfillment.models import Order, Product  # noqa: E402
from tests.helpers import BUSINESS_ID  # noqa: E402


@pytest.fixture(autouse=True)
def reset_metrics():
    metrics.reset()
    yield


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'fulfillment.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def product(session_factory) -> Product:
    async with session_factory() as session:
        product = Product(business_id=BUSINESS_ID, name="Amazing Spider-Man #300", stock=10)
        session.add(product)
        await session.commit()
        return product


@pytest_asyncio.fixture
async def order(session_factory) -> Order:
    async with session_factory() as session:
        order = Order(order_id="ORD-1001", buyer_email="buyer@example.com", status="paid")
        session.add(order)
        await session.commit()
        return order
