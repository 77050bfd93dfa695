"""Actor resolution and tenant-scope enforcement.

The gate turns a bearer credential plus the resolved request tenant into an
``AccessContext``:

* A superadmin always passes the tenant check and acts *as* the request
  tenant when one is resolved.
* An owner with no home tenant (still onboarding) passes.
* Anyone else must belong to the request tenant, if one was resolved;
  otherwise the request is treated as unauthenticated.

Users are read through a short-TTL cache keyed by user id.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from commerce_core.cache.store import CacheUnavailableError, KeyValueStore
from commerce_core.models.tenant import TenantSnapshot
from commerce_core.models.user import UserRole, UserSnapshot
from commerce_core.state.repository import UserRepository
from jose import JWTError, jwt
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = logging.getLogger(__name__)


def user_cache_key(user_id: str) -> str:
    return f"user:{user_id}"


def issue_credential(
    user_id: str,
    secret: str,
    *,
    algorithm: str = "HS256",
    expires_in: timedelta = timedelta(hours=12),
) -> str:
    """Sign a bearer credential whose subject is *user_id*."""
    now = datetime.now(UTC)
    claims = {"sub": user_id, "iat": now, "exp": now + expires_in}
    return jwt.encode(claims, secret, algorithm=algorithm)


@dataclass(frozen=True, slots=True)
class AccessContext:
    """Authenticated actor and the tenant its writes are scoped to."""

    user: UserSnapshot
    effective_tenant_id: str | None
    tenant: TenantSnapshot | None = None

    @property
    def role(self) -> UserRole:
        return self.user.role


class AccessControlGate:
    """Derive the acting user and effective tenant for a request.

    Parameters
    ----------
    session_factory:
        Factory for short-lived read sessions used on cache misses.
    store:
        Key-value cache backend shared with the tenant directory.
    jwt_secret:
        HMAC key used to verify bearer credentials.
    jwt_algorithm:
        Accepted signing algorithm.
    ttl_seconds:
        Lifetime of cached user snapshots.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        store: KeyValueStore,
        *,
        jwt_secret: str,
        jwt_algorithm: str = "HS256",
        ttl_seconds: int = 60,
    ) -> None:
        self._session_factory = session_factory
        self._store = store
        self._jwt_secret = jwt_secret
        self._jwt_algorithm = jwt_algorithm
        self._ttl = ttl_seconds

    def subject_of(self, credential: str) -> str | None:
        """Return the user id carried by a valid credential, else ``None``."""
        if not self._jwt_secret:
            logger.error("Bearer credential presented but no JWT secret is configured")
            return None
        try:
            claims = jwt.decode(credential, self._jwt_secret, algorithms=[self._jwt_algorithm])
        except JWTError as exc:
            logger.debug("Rejected bearer credential: %s", exc)
            return None
        sub = claims.get("sub")
        return sub if isinstance(sub, str) and sub else None

    async def derive(self, credential: str | None, tenant: TenantSnapshot | None) -> AccessContext | None:
        """Return the access context, or ``None`` when unauthenticated for *tenant*."""
        if not credential:
            return None
        user_id = self.subject_of(credential)
        if user_id is None:
            return None
        user = await self.get_user(user_id)
        if user is None:
            return None

        if user.role == UserRole.SUPERADMIN:
            effective = tenant.id if tenant is not None else user.tenant_id
            return AccessContext(user=user, effective_tenant_id=effective, tenant=tenant)

        if user.role == UserRole.OWNER and user.tenant_id is None:
            return AccessContext(user=user, effective_tenant_id=None, tenant=tenant)

        if tenant is not None and tenant.id != user.tenant_id:
            logger.info("User %s is not a member of tenant %s", user.id, tenant.id)
            return None
        return AccessContext(user=user, effective_tenant_id=user.tenant_id, tenant=tenant)

    # ------------------------------------------------------------------
    # User cache
    # ------------------------------------------------------------------

    async def get_user(self, user_id: str) -> UserSnapshot | None:
        key = user_cache_key(user_id)
        try:
            raw = await self._store.get(key)
        except CacheUnavailableError as exc:
            logger.warning("User cache read failed for %s: %s", key, exc)
            raw = None
        if raw is not None:
            try:
                return UserSnapshot.model_validate_json(raw)
            except ValidationError:
                logger.warning("Discarding undecodable user cache entry %s", key)

        async with self._session_factory() as session:
            row = await UserRepository(session).get(user_id)
            snapshot = UserSnapshot.model_validate(row) if row is not None else None
        if snapshot is None:
            return None
        try:
            await self._store.set(key, snapshot.model_dump_json(), self._ttl)
        except CacheUnavailableError as exc:
            logger.warning("User cache write failed for %s: %s", key, exc)
        return snapshot

    async def invalidate_user(self, user_id: str) -> None:
        """Drop a user's cached snapshot.  Call after any user mutation."""
        try:
            await self._store.delete(user_cache_key(user_id))
        except CacheUnavailableError as exc:
            logger.warning("User cache invalidation failed for %s: %s", user_id, exc)
