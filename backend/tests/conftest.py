"""
Pytest configuration and shared fixtures for the storefront backend tests.

Provides an in-memory SQLite DB, a file-backed SQLite engine for concurrency
tests, an httpx client bound to the FastAPI app, and a mock gateway API.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("REAPER_ENABLED", "false")

import itertools
import json
from decimal import Decimal
from typing import AsyncGenerator

import httpx
import pytest
from httpx import ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from config import settings
from database import Base, build_engine, get_db, get_session_factory
from db_models import Product
from deps import get_gateway_factory
from main import app
from middleware.rate_limit import get_limiter
from services.gateways import get_gateway

# ── Test Configuration ───────────────────────────────────────────────
settings.paystack_secret_key = "sk_test_paystack"
settings.flutterwave_secret_key = "FLWSECK_TEST-flutterwave"
settings.flutterwave_secret_hash = "flw-webhook-hash"
settings.cron_secret = "cron-test-secret"
settings.reaper_enabled = False


# ── Database Fixtures ────────────────────────────────────────────────


@pytest.fixture(scope="function")
async def session_factory() -> AsyncGenerator[async_sessionmaker, None]:
    """
    Session factory over an in-memory SQLite database.

    Uses StaticPool so every session sees the same in-memory database.
    Tests must commit before handing control to code that opens its own
    session.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture(scope="function")
async def file_session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker, None]:
    """
    File-backed SQLite with BEGIN IMMEDIATE + busy timeout, as in production.

    Each session gets its own connection, so asyncio.gather() over sessions
    exercises real writer contention.
    """
    engine = build_engine(f"sqlite:///{tmp_path / 'concurrency.db'}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


# ── Data Helpers ─────────────────────────────────────────────────────


_slugs = itertools.count(1)


async def create_product(session: AsyncSession, **overrides) -> Product:
    data = {
        "slug": f"product-{next(_slugs)}",
        "name": "Leather Belt",
        "price": Decimal("1000.00"),
        "stock": 10,
        "active": True,
        "discount_active": False,
        "discount_type": None,
        "discount_value": Decimal("0"),
    }
    data.update(overrides)
    product = Product(**data)
    session.add(product)
    await session.commit()
    return product


async def fetch(session: AsyncSession, model, ident):
    """Load a row fresh from the database, bypassing the identity map."""
    return await session.get(model, ident, populate_existing=True)


@pytest.fixture
def customer():
    from services.reservation_service import CustomerInfo

    return CustomerInfo(
        email="ada@example.com",
        customer_name="Ada Obi",
        phone="+2348012345678",
        address="12 Allen Avenue, Ikeja, Lagos",
    )


@pytest.fixture
def checkout_body():
    def _build(items, **overrides):
        body = {
            "email": "ada@example.com",
            "customer_name": "Ada Obi",
            "phone": "+2348012345678",
            "address": "12 Allen Avenue, Ikeja, Lagos",
            "items": items,
        }
        body.update(overrides)
        return body

    return _build


# ── Gateway Fixtures ─────────────────────────────────────────────────


class MockGatewayAPI:
    """
    Stand-in for the Paystack and Flutterwave HTTP APIs.

    Register canned answers with `on(method, path, status, json)`; every
    request is recorded in `requests` with its decoded JSON body.
    """

    def __init__(self):
        self.routes: dict[tuple[str, str], tuple[int, dict]] = {}
        self.requests: list[dict] = []
        self.transport = httpx.MockTransport(self._handle)

    def on(self, method: str, path: str, status: int = 200, json_body: dict | None = None):
        self.routes[(method.upper(), path)] = (status, json_body or {})

    def _handle(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else None
        self.requests.append({
            "method": request.method,
            "path": request.url.path,
            "params": dict(request.url.params),
            "headers": dict(request.headers),
            "json": body,
        })
        key = (request.method, request.url.path)
        if key not in self.routes:
            return httpx.Response(404, json={"status": False, "message": "no mock route"})
        status, payload = self.routes[key]
        return httpx.Response(status, json=payload)

    def factory(self, name, **kwargs):
        return get_gateway(name, transport=self.transport, **kwargs)


@pytest.fixture
def gateway_api() -> MockGatewayAPI:
    api = MockGatewayAPI()
    api.on("POST", "/transaction/initialize", json_body={
        "status": True,
        "message": "Authorization URL created",
        "data": {"authorization_url": "https://checkout.paystack.com/abc123", "access_code": "abc123"},
    })
    api.on("POST", "/v3/payments", json_body={
        "status": "success",
        "message": "Hosted Link",
        "data": {"link": "https://checkout.flutterwave.com/v3/hosted/pay/xyz789"},
    })
    return api


# ── API Client ───────────────────────────────────────────────────────


@pytest.fixture
async def client(session_factory, gateway_api) -> AsyncGenerator[httpx.AsyncClient, None]:
    """
    httpx client bound to the app, with the DB and gateways swapped out.
    """
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_gateway_factory] = lambda: gateway_api.factory
    get_limiter().reset()

    async with httpx.AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
    get_limiter().reset()
