"""Middleware components for the commerce API."""

from __future__ import annotations

from commerce_api.middleware.auth import TenantContextMiddleware
from commerce_api.middleware.logging import RequestLoggingMiddleware

__all__ = [
    "RequestLoggingMiddleware",
    "TenantContextMiddleware",
]
