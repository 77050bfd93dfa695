"""FastAPI dependency injection for settings, sessions, caches, and services."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from typing import Annotated

from commerce_core.cache.store import KeyValueStore, create_store
from commerce_core.models.tenant import TenantSnapshot
from commerce_core.state.database import get_engine
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from commerce_api.config import APISettings, load_api_settings
from commerce_api.errors import NotFoundError, UnauthorizedError
from commerce_api.services.access_gate import AccessContext, AccessControlGate
from commerce_api.services.stripe_gateway import StripeGateway
from commerce_api.services.tenant_directory import TenantDirectory
from commerce_api.services.webhook_ingestion import WebhookIngestion

logger = logging.getLogger(__name__)

_NOT_INITIALISED = "{} has not been initialised. Ensure {}() is called during application startup."

# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

_settings_cache: APISettings | None = None


def get_settings() -> APISettings:
    """Return the cached :class:`APISettings` singleton."""
    global _settings_cache  # noqa: PLW0603
    if _settings_cache is None:
        _settings_cache = load_api_settings()
    return _settings_cache


SettingsDep = Annotated[APISettings, Depends(get_settings)]

# ---------------------------------------------------------------------------
# Database session
# ---------------------------------------------------------------------------

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def init_engine(settings: APISettings) -> AsyncEngine:
    """Create and cache the global async engine."""
    global _engine, _session_factory  # noqa: PLW0603
    _engine = get_engine(settings.database_url)
    _session_factory = async_sessionmaker(_engine, expire_on_commit=False)
    return _engine


async def dispose_engine() -> None:
    """Dispose the global engine pool (call during shutdown)."""
    global _engine, _session_factory  # noqa: PLW0603
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return the global async session factory.

    Used by components that operate outside FastAPI's dependency injection
    (middleware, the tenant directory, webhook ingestion).
    """
    if _session_factory is None:
        raise RuntimeError(_NOT_INITIALISED.format("Database engine", "init_engine"))
    return _session_factory


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an ``AsyncSession`` that commits on clean exit.

    Services commit their own multi-step writes; the trailing commit here
    only flushes whatever a handler left pending.
    """
    session = get_session_factory()()
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


SessionDep = Annotated[AsyncSession, Depends(get_db_session)]

# ---------------------------------------------------------------------------
# Key-value cache
# ---------------------------------------------------------------------------

_kv_store: KeyValueStore | None = None


def init_kv_store(settings: APISettings) -> KeyValueStore:
    global _kv_store  # noqa: PLW0603
    _kv_store = create_store(settings.redis_url)
    return _kv_store


async def dispose_kv_store() -> None:
    global _kv_store  # noqa: PLW0603
    if _kv_store is not None:
        await _kv_store.close()
        _kv_store = None


def get_kv_store() -> KeyValueStore:
    if _kv_store is None:
        raise RuntimeError(_NOT_INITIALISED.format("Key-value store", "init_kv_store"))
    return _kv_store


KVStoreDep = Annotated[KeyValueStore, Depends(get_kv_store)]

# ---------------------------------------------------------------------------
# Tenant directory and access gate
# ---------------------------------------------------------------------------

_tenant_directory: TenantDirectory | None = None
_access_gate: AccessControlGate | None = None


def init_tenant_directory(settings: APISettings) -> TenantDirectory:
    """Build the tenant directory on the global session factory and cache."""
    global _tenant_directory  # noqa: PLW0603
    _tenant_directory = TenantDirectory(
        get_session_factory(),
        get_kv_store(),
        base_domain=settings.base_domain,
        ttl_seconds=settings.tenant_cache_ttl_seconds,
    )
    return _tenant_directory


def get_tenant_directory() -> TenantDirectory:
    if _tenant_directory is None:
        raise RuntimeError(_NOT_INITIALISED.format("Tenant directory", "init_tenant_directory"))
    return _tenant_directory


def init_access_gate(settings: APISettings) -> AccessControlGate:
    global _access_gate  # noqa: PLW0603
    _access_gate = AccessControlGate(
        get_session_factory(),
        get_kv_store(),
        jwt_secret=settings.jwt_secret.get_secret_value(),
        jwt_algorithm=settings.jwt_algorithm,
        ttl_seconds=settings.user_cache_ttl_seconds,
    )
    return _access_gate


def get_access_gate() -> AccessControlGate:
    if _access_gate is None:
        raise RuntimeError(_NOT_INITIALISED.format("Access control gate", "init_access_gate"))
    return _access_gate


def dispose_access_layer() -> None:
    global _tenant_directory, _access_gate  # noqa: PLW0603
    _tenant_directory = None
    _access_gate = None


DirectoryDep = Annotated[TenantDirectory, Depends(get_tenant_directory)]

# ---------------------------------------------------------------------------
# Payment provider and webhook ingestion
# ---------------------------------------------------------------------------

_stripe_gateway: StripeGateway | None = None
_webhook_ingestion: WebhookIngestion | None = None


def init_payments(settings: APISettings) -> None:
    """Create the Stripe gateway and the webhook ingestion pipeline."""
    global _stripe_gateway, _webhook_ingestion  # noqa: PLW0603
    _stripe_gateway = StripeGateway(settings)
    _webhook_ingestion = WebhookIngestion(get_session_factory(), settings, get_tenant_directory())


def dispose_payments() -> None:
    global _stripe_gateway, _webhook_ingestion  # noqa: PLW0603
    _stripe_gateway = None
    _webhook_ingestion = None


def get_stripe_gateway() -> StripeGateway:
    if _stripe_gateway is None:
        raise RuntimeError(_NOT_INITIALISED.format("Stripe gateway", "init_payments"))
    return _stripe_gateway


def get_webhook_ingestion() -> WebhookIngestion:
    if _webhook_ingestion is None:
        raise RuntimeError(_NOT_INITIALISED.format("Webhook ingestion", "init_payments"))
    return _webhook_ingestion


GatewayDep = Annotated[StripeGateway, Depends(get_stripe_gateway)]
IngestionDep = Annotated[WebhookIngestion, Depends(get_webhook_ingestion)]

# ---------------------------------------------------------------------------
# Request context (populated by TenantContextMiddleware)
# ---------------------------------------------------------------------------


def get_tenant(request: Request) -> TenantSnapshot:
    """Return the resolved request tenant or raise 404."""
    tenant: TenantSnapshot | None = getattr(request.state, "tenant", None)
    if tenant is None:
        raise NotFoundError("Tenant not found")
    return tenant


def get_access(request: Request) -> AccessContext:
    """Return the authenticated access context or raise 401."""
    access: AccessContext | None = getattr(request.state, "access", None)
    if access is None:
        raise UnauthorizedError("Authentication required")
    return access


def get_effective_tenant_id(access: AccessContext = Depends(get_access)) -> str:
    """Tenant id that management writes are scoped to.

    Owners still onboarding have no tenant yet and cannot manage billing.
    """
    if access.effective_tenant_id is None:
        raise NotFoundError("Tenant not found")
    return access.effective_tenant_id


TenantDep = Annotated[TenantSnapshot, Depends(get_tenant)]
AccessDep = Annotated[AccessContext, Depends(get_access)]
EffectiveTenantDep = Annotated[str, Depends(get_effective_tenant_id)]
