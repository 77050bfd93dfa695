"""Domain snapshot models."""

from commerce_core.models.tenant import (
    ConnectStatus,
    TenantSnapshot,
    TenantStatus,
    derive_connect_status,
)
from commerce_core.models.user import UserRole, UserSnapshot

__all__ = [
    "ConnectStatus",
    "TenantSnapshot",
    "TenantStatus",
    "UserRole",
    "UserSnapshot",
    "derive_connect_status",
]
