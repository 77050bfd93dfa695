"""Tenant resolution through a read-through key-value cache.

Resolution order for an inbound request:

1. Explicit slug header -- always wins when present.
2. Loopback host (``localhost``, ``127.0.0.1``, ``::1``) -- no tenant, no
   lookup.
3. Subdomain of the configured base domain -- slug is the first label.
4. Exact custom-domain match.

Slug and domain lookups are cached under separate keys.  Cached snapshots
include the tenant status, and the active filter runs after every hit, so a
suspended tenant stays cached but never resolves.  Cache failures are logged
and fall through to the database.
"""

from __future__ import annotations

import logging

from commerce_core.cache.store import CacheUnavailableError, KeyValueStore
from commerce_core.models.tenant import TenantSnapshot
from commerce_core.state.repository import TenantRepository
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = logging.getLogger(__name__)

_LOOPBACK_HOSTS = frozenset({"localhost", "127.0.0.1", "::1"})


def slug_cache_key(slug: str) -> str:
    return f"tenant:slug:{slug.lower()}"


def domain_cache_key(domain: str) -> str:
    return f"tenant:domain:{domain.lower()}"


def normalize_host(host: str) -> str:
    """Lowercase *host* and strip any port, handling bracketed IPv6."""
    host = host.strip().lower()
    if host.startswith("["):
        end = host.find("]")
        return host[1:end] if end != -1 else host[1:]
    if host.count(":") == 1:
        host = host.split(":", 1)[0]
    return host.rstrip(".")


class TenantDirectory:
    """Resolve tenants by host or slug and keep their cache entries coherent.

    Parameters
    ----------
    session_factory:
        Factory for short-lived read sessions used on cache misses.
    store:
        Key-value cache backend.
    base_domain:
        Apex domain under which tenants get ``<slug>.<base_domain>``.
    ttl_seconds:
        Lifetime of cached snapshots.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        store: KeyValueStore,
        *,
        base_domain: str,
        ttl_seconds: int = 300,
    ) -> None:
        self._session_factory = session_factory
        self._store = store
        self._base_domain = normalize_host(base_domain)
        self._ttl = ttl_seconds

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    async def resolve(self, host: str | None, explicit_slug: str | None = None) -> TenantSnapshot | None:
        """Return the active tenant addressed by the request, or ``None``."""
        if explicit_slug and explicit_slug.strip():
            return self._active(await self.get_by_slug(explicit_slug.strip().lower()))

        if not host:
            return None
        hostname = normalize_host(host)
        if hostname in _LOOPBACK_HOSTS:
            return None

        slug = self._subdomain_slug(hostname)
        if slug is not None:
            return self._active(await self.get_by_slug(slug))
        if hostname == self._base_domain:
            return None

        return self._active(await self.get_by_domain(hostname))

    def _subdomain_slug(self, hostname: str) -> str | None:
        suffix = "." + self._base_domain
        if not hostname.endswith(suffix):
            return None
        label = hostname[: -len(suffix)].split(".", 1)[0]
        return label or None

    @staticmethod
    def _active(snapshot: TenantSnapshot | None) -> TenantSnapshot | None:
        if snapshot is None or not snapshot.is_active:
            return None
        return snapshot

    async def get_by_slug(self, slug: str) -> TenantSnapshot | None:
        """Read-through lookup by slug.  Returns the tenant regardless of status."""
        key = slug_cache_key(slug)
        cached = await self._cache_get(key)
        if cached is not None:
            return cached
        async with self._session_factory() as session:
            row = await TenantRepository(session).get_by_slug(slug.lower())
            snapshot = TenantSnapshot.model_validate(row) if row is not None else None
        if snapshot is not None:
            await self._cache_set(key, snapshot)
        return snapshot

    async def get_by_domain(self, domain: str) -> TenantSnapshot | None:
        """Read-through lookup by custom domain.  Returns the tenant regardless of status."""
        key = domain_cache_key(domain)
        cached = await self._cache_get(key)
        if cached is not None:
            return cached
        async with self._session_factory() as session:
            row = await TenantRepository(session).get_by_custom_domain(domain.lower())
            snapshot = TenantSnapshot.model_validate(row) if row is not None else None
        if snapshot is not None:
            await self._cache_set(key, snapshot)
        return snapshot

    # ------------------------------------------------------------------
    # Invalidation
    # ------------------------------------------------------------------

    async def invalidate(self, slug: str) -> None:
        await self._cache_delete(slug_cache_key(slug))

    async def invalidate_by_domain(self, domain: str) -> None:
        await self._cache_delete(domain_cache_key(domain))

    async def invalidate_tenant(self, slug: str, custom_domain: str | None) -> None:
        """Drop every cache entry for a tenant after it was mutated."""
        keys = [slug_cache_key(slug)]
        if custom_domain:
            keys.append(domain_cache_key(custom_domain))
        await self._cache_delete(*keys)

    # ------------------------------------------------------------------
    # Cache helpers
    # ------------------------------------------------------------------

    async def _cache_get(self, key: str) -> TenantSnapshot | None:
        try:
            raw = await self._store.get(key)
        except CacheUnavailableError as exc:
            logger.warning("Tenant cache read failed for %s: %s", key, exc)
            return None
        if raw is None:
            return None
        try:
            return TenantSnapshot.model_validate_json(raw)
        except ValidationError:
            logger.warning("Discarding undecodable tenant cache entry %s", key)
            return None

    async def _cache_set(self, key: str, snapshot: TenantSnapshot) -> None:
        try:
            await self._store.set(key, snapshot.model_dump_json(), self._ttl)
        except CacheUnavailableError as exc:
            logger.warning("Tenant cache write failed for %s: %s", key, exc)

    async def _cache_delete(self, *keys: str) -> None:
        # A failed delete leaves the entry to expire by TTL.
        try:
            await self._store.delete(*keys)
        except CacheUnavailableError as exc:
            logger.warning("Tenant cache invalidation failed for %s: %s", ", ".join(keys), exc)
