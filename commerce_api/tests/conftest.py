"""Shared fixtures for commerce API tests.

Provides a temporary SQLite database, settings with Stripe fully configured,
seeding helpers, provider-style webhook signing, and a FastAPI app wired to
the test database through the module-level singletons in
``commerce_api.dependencies``.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import time
from datetime import UTC
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from commerce_core.cache.store import InMemoryKeyValueStore
from commerce_core.state.database import get_session_factory_for
from commerce_core.state.sqlite_adapter import create_local_tables, get_local_engine
from commerce_core.state.tables import (
    Base,
    CartItemTable,
    CourseTable,
    PaymentTable,
    TenantTable,
    UserTable,
    new_id,
)
from httpx import ASGITransport, AsyncClient
from sqlalchemy import DateTime
from sqlalchemy.types import TypeDecorator

from commerce_api import dependencies as deps
from commerce_api.config import APISettings
from commerce_api.dependencies import get_settings, get_stripe_gateway
from commerce_api.main import create_app
from commerce_api.services.access_gate import AccessControlGate, issue_credential
from commerce_api.services.stripe_gateway import HostedSession, StripeGateway
from commerce_api.services.tenant_directory import TenantDirectory
from commerce_api.services.webhook_ingestion import WebhookIngestion

TEST_JWT_SECRET = "test-secret-key-for-commerce-tests"
PLATFORM_WEBHOOK_SECRET = "whsec_platform_test"
CONNECT_WEBHOOK_SECRET = "whsec_connect_test"
BASE_DOMAIN = "academy.test"


def _patch_columns_for_sqlite() -> None:
    """Make ``DateTime(timezone=True)`` columns return UTC-aware values on SQLite."""

    class _UTCAwareDateTime(TypeDecorator):
        impl = DateTime
        cache_ok = True

        def process_result_value(self, value, dialect):  # type: ignore[override]
            if value is not None and value.tzinfo is None:
                return value.replace(tzinfo=UTC)
            return value

    for table in Base.metadata.tables.values():
        for column in table.columns:
            if isinstance(column.type, DateTime) and getattr(column.type, "timezone", False):
                column.type = _UTCAwareDateTime()


_patch_columns_for_sqlite()


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


def make_settings(**overrides: Any) -> APISettings:
    """Settings with Stripe fully configured unless overridden."""
    values: dict[str, Any] = {
        "database_url": "sqlite+aiosqlite:///:memory:",
        "base_domain": BASE_DOMAIN,
        "jwt_secret": TEST_JWT_SECRET,
        "stripe_secret_key": "sk_test_xxx",
        "stripe_webhook_secret": PLATFORM_WEBHOOK_SECRET,
        "stripe_connect_webhook_secret": CONNECT_WEBHOOK_SECRET,
        "stripe_price_id_starter": "price_starter",
        "stripe_price_id_growth": "price_growth",
        "stripe_price_id_scale": "price_scale",
        "client_scheme": "https",
    }
    values.update(overrides)
    return APISettings(**values)


@pytest.fixture
def settings() -> APISettings:
    return make_settings()


@pytest.fixture
def settings_factory():
    return make_settings


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def engine(tmp_path):
    eng = get_local_engine(tmp_path / "commerce.db")
    await create_local_tables(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return get_session_factory_for(engine)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as sess:
        yield sess


@pytest.fixture
def kv_store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def directory(session_factory, kv_store) -> TenantDirectory:
    return TenantDirectory(session_factory, kv_store, base_domain=BASE_DOMAIN, ttl_seconds=300)


@pytest.fixture
def gate(session_factory, kv_store) -> AccessControlGate:
    return AccessControlGate(session_factory, kv_store, jwt_secret=TEST_JWT_SECRET)


class Seeder:
    """Insert tenants, users, courses, cart rows and payments in committed transactions."""

    def __init__(self, session_factory) -> None:
        self._factory = session_factory

    async def _add(self, row: Any) -> Any:
        async with self._factory() as session:
            session.add(row)
            await session.commit()
        return row

    async def tenant(self, slug: str = "acme", **fields: Any) -> TenantTable:
        defaults: dict[str, Any] = {
            "id": new_id(),
            "slug": slug,
            "name": f"{slug.title()} Academy",
            "external_connect_account_id": f"acct_{slug}",
            "charges_enabled": True,
            "payouts_enabled": True,
            "connect_status": "active",
        }
        defaults.update(fields)
        return await self._add(TenantTable(**defaults))

    async def user(self, tenant_id: str | None, role: str = "student", **fields: Any) -> UserTable:
        defaults: dict[str, Any] = {
            "id": new_id(),
            "tenant_id": tenant_id,
            "email": f"{role}-{new_id()[:6]}@example.test",
            "role": role,
        }
        defaults.update(fields)
        return await self._add(UserTable(**defaults))

    async def course(self, tenant_id: str, price: int, **fields: Any) -> CourseTable:
        defaults: dict[str, Any] = {
            "id": new_id(),
            "tenant_id": tenant_id,
            "title": f"Course {price}",
            "price": price,
            "currency": "usd",
            "status": "published",
        }
        defaults.update(fields)
        return await self._add(CourseTable(**defaults))

    async def cart(self, tenant_id: str, user_id: str, course_id: str) -> CartItemTable:
        return await self._add(CartItemTable(tenant_id=tenant_id, user_id=user_id, course_id=course_id))

    async def payment(self, tenant_id: str, user_id: str, amount: int, **fields: Any) -> PaymentTable:
        defaults: dict[str, Any] = {
            "id": new_id(),
            "tenant_id": tenant_id,
            "user_id": user_id,
            "amount": amount,
            "platform_fee": 0,
            "currency": "usd",
            "status": "pending",
        }
        defaults.update(fields)
        return await self._add(PaymentTable(**defaults))


@pytest.fixture
def seed(session_factory) -> Seeder:
    return Seeder(session_factory)


# ---------------------------------------------------------------------------
# Provider doubles
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_gateway() -> MagicMock:
    """A ``StripeGateway`` double whose calls succeed with canned values."""
    gateway = MagicMock(spec=StripeGateway)
    gateway.create_course_checkout = AsyncMock(
        return_value=HostedSession(id="cs_test_1", url="https://checkout.stripe.test/cs_test_1")
    )
    gateway.create_customer = AsyncMock(return_value="cus_new")
    gateway.create_subscription_checkout = AsyncMock(
        return_value=HostedSession(id="cs_sub_1", url="https://checkout.stripe.test/cs_sub_1")
    )
    gateway.create_portal_session = AsyncMock(return_value="https://billing.stripe.test/portal")
    gateway.cancel_at_period_end = AsyncMock(return_value=None)
    gateway.create_connect_account = AsyncMock(return_value="acct_new")
    gateway.create_account_link = AsyncMock(return_value="https://connect.stripe.test/onboard")
    gateway.retrieve_account = AsyncMock()
    gateway.create_login_link = AsyncMock(return_value="https://connect.stripe.test/dashboard")
    return gateway


def sign_payload(payload: bytes, secret: str, timestamp: int | None = None) -> str:
    """Build a ``Stripe-Signature`` header exactly as the provider does."""
    ts = int(time.time()) if timestamp is None else timestamp
    signed = f"{ts}.{payload.decode('utf-8')}".encode()
    digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={ts},v1={digest}"


@pytest.fixture
def signer():
    return sign_payload


def encode_event(event: dict[str, Any]) -> bytes:
    return json.dumps(event, separators=(",", ":")).encode("utf-8")


@pytest.fixture
def encode():
    return encode_event


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------


@pytest.fixture
def bearer():
    """Return a function producing an Authorization header for a user id."""

    def _headers(user_id: str, **extra: str) -> dict[str, str]:
        headers = {"Authorization": f"Bearer {issue_credential(user_id, TEST_JWT_SECRET)}"}
        headers.update(extra)
        return headers

    return _headers


@pytest_asyncio.fixture
async def app(settings, session_factory, kv_store, directory, gate, mock_gateway):
    """FastAPI app bound to the test database, cache and gateway double."""
    application = create_app()

    deps._session_factory = session_factory
    deps._kv_store = kv_store
    deps._tenant_directory = directory
    deps._access_gate = gate
    deps._stripe_gateway = mock_gateway
    deps._webhook_ingestion = WebhookIngestion(session_factory, settings, directory)

    application.dependency_overrides[get_settings] = lambda: settings
    application.dependency_overrides[get_stripe_gateway] = lambda: mock_gateway

    yield application

    application.dependency_overrides.clear()
    deps._session_factory = None
    deps._kv_store = None
    deps._tenant_directory = None
    deps._access_gate = None
    deps._stripe_gateway = None
    deps._webhook_ingestion = None


@pytest_asyncio.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url=f"http://{BASE_DOMAIN}") as ac:
        yield ac
