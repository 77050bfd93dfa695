"""Role-based permission guards.

Roles are flat rather than hierarchical: a superadmin holds every
permission, owners manage their storefront's billing, and every signed-in
member may buy courses.

Usage in routers::

    from commerce_api.middleware.rbac import Permission, require_permission

    @router.post("")
    async def start_subscription(
        access: AccessContext = Depends(require_permission(Permission.MANAGE_SUBSCRIPTION)),
    ) -> ...:
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum

from commerce_core.models.user import UserRole
from fastapi import Depends

from commerce_api.errors import ForbiddenError
from commerce_api.services.access_gate import AccessContext

logger = logging.getLogger(__name__)


class Permission(str, Enum):
    """Permission tokens checked by endpoint guards."""

    PURCHASE_COURSES = "purchase:courses"
    MANAGE_SUBSCRIPTION = "manage:subscription"
    MANAGE_PAYOUTS = "manage:payouts"
    VIEW_REVENUE = "view:revenue"


_MEMBER_PERMS: frozenset[Permission] = frozenset({Permission.PURCHASE_COURSES})

_OWNER_PERMS: frozenset[Permission] = _MEMBER_PERMS | frozenset(
    {
        Permission.MANAGE_SUBSCRIPTION,
        Permission.MANAGE_PAYOUTS,
        Permission.VIEW_REVENUE,
    }
)

ROLE_PERMISSIONS: dict[UserRole, frozenset[Permission]] = {
    UserRole.STUDENT: _MEMBER_PERMS,
    UserRole.ADMIN: _MEMBER_PERMS,
    UserRole.OWNER: _OWNER_PERMS,
    UserRole.SUPERADMIN: frozenset(Permission),
}


def role_has_permission(role: UserRole, permission: Permission) -> bool:
    """Return ``True`` if *role* grants *permission*."""
    return permission in ROLE_PERMISSIONS.get(role, frozenset())


def require_permission(permission: Permission) -> Callable[..., AccessContext]:
    """Return a FastAPI dependency that enforces *permission*.

    The dependency resolves the authenticated :class:`AccessContext`
    (401 when absent) and returns it so handlers can use the actor.
    """
    from commerce_api.dependencies import get_access

    def _guard(access: AccessContext = Depends(get_access)) -> AccessContext:
        if not role_has_permission(access.role, permission):
            logger.info(
                "Permission denied: user=%s role=%s requires %s",
                access.user.id,
                access.role.value,
                permission.value,
            )
            raise ForbiddenError(f"Role '{access.role.value}' does not have '{permission.value}' permission")
        return access

    return _guard
