"""User snapshot model and platform roles."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class UserRole(str, Enum):
    """Platform role.  ``SUPERADMIN`` operates across every tenant."""

    SUPERADMIN = "superadmin"
    OWNER = "owner"
    ADMIN = "admin"
    STUDENT = "student"


class UserSnapshot(BaseModel):
    """Cached, immutable view of a user."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str = Field(..., min_length=1)
    tenant_id: str | None = Field(
        default=None,
        description="Home tenant.  Absent for superadmins and owners still onboarding.",
    )
    email: str = Field(...)
    name: str | None = Field(default=None)
    role: UserRole = Field(default=UserRole.STUDENT)
