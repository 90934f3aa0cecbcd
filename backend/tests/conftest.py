"""
Pytest configuration and shared fixtures for the checkout tests.

Provides an in-memory SQLite session per test, a file-backed session
factory for concurrency tests (independent connections, like independent
request handlers), an httpx client bound to the app, and simulated card
and PayPal processors.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SIMULATION_MODE", "true")
os.environ.setdefault("ENVIRONMENT", "development")

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from config import settings

# ── Test Configuration ───────────────────────────────────────────────
# Set test-only values for settings that would normally come from .env
if not settings.jwt_secret:
    settings.jwt_secret = "test-jwt-secret-for-pytest-only"

from main import app
from database import Base, configure_sqlite_locking, get_db
from deps import get_payment_gateway, get_paypal_gateway
from domain.constants import PROVIDER_SIMULATED_PAYPAL
from domain.cart import CustomerContact, ShippingAddress
from middleware.auth import issue_access_token
from middleware.rate_limit import get_throttle
from services.payment_gateway import SimulatedGateway
from tests.factories import TEST_WEBHOOK_SECRET, place_order, seed_artworks


# ── Database Fixtures ────────────────────────────────────────────────


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    In-memory SQLite database session for each test.

    Uses StaticPool to allow in-memory SQLite with async SQLAlchemy.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    configure_sqlite_locking(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session_maker = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )

    async with async_session_maker() as session:
        yield session

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker, None]:
    """
    File-backed database; every session gets its own connection.

    Used to run triggers concurrently the way separate request handlers would.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'concurrency.db'}",
        connect_args={"timeout": 30},
    )
    configure_sqlite_locking(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


# ── Collaborator Fixtures ────────────────────────────────────────────


@pytest.fixture
def gateway() -> SimulatedGateway:
    """Fresh in-process card processor."""
    return SimulatedGateway(webhook_secret=TEST_WEBHOOK_SECRET)


@pytest.fixture
def paypal_gateway() -> SimulatedGateway:
    """Fresh in-process redirect processor standing in for PayPal."""
    return SimulatedGateway(
        webhook_secret=TEST_WEBHOOK_SECRET,
        provider=PROVIDER_SIMULATED_PAYPAL,
        approval_url="http://test/checkout/paypal/approve",
    )


@pytest.fixture(autouse=True)
def _reset_checkout_throttle():
    get_throttle().reset()
    yield
    get_throttle().reset()


@pytest_asyncio.fixture(scope="function")
async def client(
    db_session: AsyncSession, gateway: SimulatedGateway, paypal_gateway: SimulatedGateway
) -> AsyncGenerator[AsyncClient, None]:
    """httpx client against the app, with the test DB session and gateways injected."""
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    app.dependency_overrides[get_paypal_gateway] = lambda: paypal_gateway

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers() -> dict:
    token = issue_access_token(subject="admin@alternus.test", role="admin")
    return {"Authorization": f"Bearer {token}"}


# ── Test Data Fixtures ───────────────────────────────────────────────


@pytest.fixture
def shipping_address() -> ShippingAddress:
    return ShippingAddress(
        first_name="Ada",
        last_name="Lovelace",
        address="Rruga e Durrësit 12",
        city="Tirana",
        postal_code="1001",
        country="Albania",
        phone="+355 69 000 0000",
    )


@pytest.fixture
def contact() -> CustomerContact:
    return CustomerContact(email="ada@example.com", name="Ada Lovelace")


@pytest.fixture
def checkout_body() -> dict:
    """Wire-format body for POST /orders (items added per test)."""
    return {
        "items": [],
        "shippingAddress": {
            "firstName": "Ada",
            "lastName": "Lovelace",
            "address": "Rruga e Durrësit 12",
            "city": "Tirana",
            "postalCode": "1001",
            "country": "Albania",
        },
        "contact": {"email": "ada@example.com", "name": "Ada Lovelace"},
        "currency": "EUR",
    }


@pytest_asyncio.fixture
async def artworks(db_session: AsyncSession) -> dict:
    return await seed_artworks(db_session)


@pytest_asyncio.fixture
async def placed_order(db_session: AsyncSession, artworks, shipping_address, contact):
    """A PENDING order for art-small (190,000 + 16,000 shipping)."""
    return await place_order(db_session, ["art-small"], shipping_address, contact)
