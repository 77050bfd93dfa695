"""FastAPI application entry-point for the commerce API."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from commerce_api import __version__
from commerce_api.config import APISettings, PlatformEnv, load_api_settings
from commerce_api.dependencies import (
    dispose_access_layer,
    dispose_engine,
    dispose_kv_store,
    dispose_payments,
    init_access_gate,
    init_engine,
    init_kv_store,
    init_payments,
    init_tenant_directory,
)
from commerce_api.errors import CommerceError
from commerce_api.middleware.auth import TenantContextMiddleware
from commerce_api.middleware.logging import RequestLoggingMiddleware
from commerce_api.routers import checkout, connect, health, revenue, subscription, tenant, webhooks

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application startup / shutdown lifecycle.

    On startup:
    - Refuse to start in staging/production without a JWT secret.
    - Initialise the async database engine and, in dev or SQLite mode,
      create tables (production uses Alembic migrations).
    - Initialise the key-value cache, tenant directory, access gate,
      Stripe gateway and webhook ingestion.

    On shutdown:
    - Drop the service singletons, close the cache, dispose the engine.
    """
    settings: APISettings = load_api_settings()

    if settings.platform_env in (PlatformEnv.STAGING, PlatformEnv.PRODUCTION) and not (
        settings.jwt_secret.get_secret_value()
    ):
        raise RuntimeError(
            f"COMMERCE_JWT_SECRET is required in {settings.platform_env.value} mode. Refusing to start."
        )

    if settings.structured_logging:
        from commerce_api.middleware.json_formatter import configure_structured_logging

        configure_structured_logging()
        logger.info("Structured JSON logging enabled")

    engine = init_engine(settings)
    is_local = settings.database_url.startswith("sqlite")
    logger.info("Database engine initialised (%s)", "local" if is_local else "postgres")

    if settings.platform_env == PlatformEnv.DEV or is_local:
        from commerce_core.state.tables import Base

        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables ensured (%s)", "local SQLite" if is_local else "dev auto-migration")

    init_kv_store(settings)
    init_tenant_directory(settings)
    init_access_gate(settings)
    init_payments(settings)
    if not settings.stripe_configured:
        logger.warning("Stripe is not fully configured; checkout and billing endpoints are disabled")

    yield

    dispose_payments()
    dispose_access_layer()
    await dispose_kv_store()
    await dispose_engine()
    logger.info("Application shutdown complete")


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app() -> FastAPI:
    """Construct and configure the FastAPI application."""
    settings = load_api_settings()

    app = FastAPI(
        title="Commerce API",
        description="Multi-tenant course checkout, settlement and platform subscriptions.",
        version=__version__,
        lifespan=lifespan,
    )

    # -- Middleware (last added runs outermost) -----------------------------

    app.add_middleware(TenantContextMiddleware, slug_header=settings.tenant_slug_header)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=[
            "Authorization",
            "Content-Type",
            "X-Correlation-ID",
            settings.tenant_slug_header,
        ],
    )

    # -- Routers -------------------------------------------------------------

    app.include_router(health.router, prefix="/api/v1")
    app.include_router(tenant.router, prefix="/api/v1")
    app.include_router(checkout.router, prefix="/api/v1")
    app.include_router(webhooks.router, prefix="/api/v1")
    app.include_router(subscription.router, prefix="/api/v1")
    app.include_router(connect.router, prefix="/api/v1")
    app.include_router(revenue.router, prefix="/api/v1")

    app.include_router(health.readiness_router)

    # -- Exception handlers --------------------------------------------------

    @app.exception_handler(CommerceError)
    async def commerce_error_handler(request: Request, exc: CommerceError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s on %s: %s", exc.code, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content={"code": exc.code, "message": exc.message})

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        logger.warning("ValueError on %s: %s", request.url.path, exc)
        return JSONResponse(status_code=400, content={"code": "BAD_REQUEST", "message": "Invalid request"})

    @app.exception_handler(SQLAlchemyError)
    async def sqlalchemy_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
        logger.error("Database error: %s", exc, exc_info=True)
        return JSONResponse(status_code=500, content={"code": "INTERNAL", "message": "Internal database error"})

    return app


# Module-level application instance used by ``uvicorn commerce_api.main:app``.
app = create_app()
