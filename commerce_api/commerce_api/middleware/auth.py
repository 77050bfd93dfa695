"""Tenant and actor resolution middleware.

For every non-public request the middleware:

1. Resolves the request tenant from the explicit slug header or the Host
   header via the tenant directory.
2. Extracts an optional ``Authorization: Bearer <token>`` credential and
   derives the access context through the access control gate.
3. Stores ``tenant``, ``access``, ``tenant_id`` and ``sub`` on
   ``request.state``.

The middleware never rejects a request on its own.  Endpoints declare what
they need through the dependencies in ``commerce_api.dependencies``, which
raise Unauthorized/NotFound when the context is missing.

Webhook endpoints are public here; they authenticate by provider
signature instead.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

logger = logging.getLogger(__name__)

# Paths that skip tenant and actor resolution.
_PUBLIC_PATHS: frozenset[str] = frozenset(
    {
        "/api/v1/health",
        "/ready",
        "/docs",
        "/openapi.json",
        "/redoc",
        "/favicon.ico",
    }
)

_PUBLIC_PREFIXES: tuple[str, ...] = (
    "/docs",
    "/redoc",
    "/api/v1/webhooks/",
)


def _is_public_path(path: str) -> bool:
    """Return ``True`` if the path should bypass context resolution."""
    if path in _PUBLIC_PATHS:
        return True
    return any(path.startswith(prefix) for prefix in _PUBLIC_PREFIXES)


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("authorization")
    if not auth_header:
        return None
    parts = auth_header.split(None, 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1].strip() or None


class TenantContextMiddleware(BaseHTTPMiddleware):
    """Populate ``request.state`` with the resolved tenant and actor."""

    def __init__(self, app: Any, *, slug_header: str = "X-Tenant-Slug") -> None:
        super().__init__(app)
        self._slug_header = slug_header

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request.state.tenant = None
        request.state.access = None
        request.state.tenant_id = None
        request.state.sub = None

        if _is_public_path(request.url.path):
            return await call_next(request)

        from commerce_api.dependencies import get_access_gate, get_tenant_directory

        try:
            tenant = await get_tenant_directory().resolve(
                request.headers.get("host"),
                request.headers.get(self._slug_header),
            )
            access = await get_access_gate().derive(_bearer_token(request), tenant)
        except SQLAlchemyError:
            logger.error("Database error while resolving request context", exc_info=True)
            return JSONResponse(
                status_code=503,
                content={"code": "INTERNAL", "message": "Service temporarily unavailable"},
            )

        request.state.tenant = tenant
        request.state.access = access
        if access is not None:
            request.state.sub = access.user.id
            request.state.tenant_id = access.effective_tenant_id
        elif tenant is not None:
            request.state.tenant_id = tenant.id

        return await call_next(request)
