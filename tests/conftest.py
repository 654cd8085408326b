"""
Pytest configuration and fixtures.
"""

import os
from typing import AsyncGenerator

# Settings are read at import time
os.environ.setdefault("APP_ENV", "development")
os.environ.setdefault("DATABASE_URL", "")
os.environ.setdefault("PAYHERE_MERCHANT_ID", "1211149")
os.environ.setdefault("PAYHERE_MERCHANT_SECRET", "test-merchant-secret")
os.environ.setdefault("ADMIN_API_KEY", "test-admin-key")
os.environ.setdefault("APP_BASE_URL", "https://payments.test")

import hashlib

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import Base, get_db
import app.models  # noqa: F401

# Use in-memory SQLite for tests
TEST_DB_URL = "sqlite+aiosqlite:///:memory:"


def _md5(value: str) -> str:
    return hashlib.md5(value.encode()).hexdigest().upper()


@pytest.fixture
def payhere_form():
    """Build a PayHere notify form signed with the test merchant secret."""

    def build(
        order_id: str,
        amount: str,
        status_code: str = "2",
        payment_id: str = "320025071278",
        currency: str = "LKR",
        merchant_id: str = "1211149",
        secret: str = "test-merchant-secret",
        **extra,
    ) -> dict:
        signature = _md5(merchant_id + order_id + amount + currency + status_code + _md5(secret))
        form = {
            "merchant_id": merchant_id,
            "order_id": order_id,
            "payment_id": payment_id,
            "payhere_amount": amount,
            "payhere_currency": currency,
            "status_code": status_code,
            "md5sig": signature,
            "status_message": "Successfully completed the payment.",
            "method": "VISA",
        }
        form.update(extra)
        return form

    return build


@pytest_asyncio.fixture
async def test_engine():
    """Create async engine for tests."""
    engine = create_async_engine(TEST_DB_URL, echo=False, poolclass=StaticPool)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for a test."""
    async_session = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False
    )

    async with async_session() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def client(db) -> AsyncGenerator[httpx.AsyncClient, None]:
    """HTTP client against the app, sharing the test session."""
    from app.main import app

    async def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
