"""Health-check and readiness probe endpoints.

``/health`` (liveness) is registered under ``/api/v1``.  ``/ready`` is a
readiness probe registered at the application root so orchestrators can
gate traffic independently of the API version.
"""

from __future__ import annotations

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from commerce_api import __version__
from commerce_api.dependencies import KVStoreDep, get_db_session

logger = logging.getLogger(__name__)

HealthSessionDep = Annotated[AsyncSession, Depends(get_db_session)]

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(session: HealthSessionDep, store: KVStoreDep) -> dict[str, Any]:
    """Return service health with dependency checks.

    Always HTTP 200.  ``db`` and ``cache`` report whether the store and the
    key-value cache are reachable; a cache outage only degrades latency.
    """
    result: dict[str, Any] = {
        "status": "healthy",
        "version": __version__,
        "db": "ok",
        "cache": "ok",
    }

    try:
        await session.execute(text("SELECT 1"))
    except Exception as exc:
        logger.warning("DB health check failed: %s", exc)
        result["db"] = "degraded"

    if not await store.ping():
        result["cache"] = "unavailable"

    return result


# ---------------------------------------------------------------------------
# Readiness probe (outside API versioning)
# ---------------------------------------------------------------------------

readiness_router = APIRouter(tags=["infrastructure"])


@readiness_router.get("/ready")
async def readiness_probe(session: HealthSessionDep, store: KVStoreDep) -> JSONResponse:
    """Readiness probe.

    Returns HTTP 200 with ``"ready"`` or ``"degraded"`` (cache down), or
    HTTP 503 with ``"not_ready"`` when the database is unreachable.
    """
    checks: dict[str, str] = {"db": "ok", "cache": "ok"}
    overall = "ready"

    try:
        await session.execute(text("SELECT 1"))
    except Exception as exc:
        logger.error("Readiness: DB check failed: %s", exc)
        checks["db"] = "unavailable"
        overall = "not_ready"

    if not await store.ping():
        checks["cache"] = "unavailable"
        if overall == "ready":
            overall = "degraded"

    status_code = 200 if overall != "not_ready" else 503
    return JSONResponse(
        status_code=status_code,
        content={"status": overall, "version": __version__, "checks": checks},
    )
