"""Narrow key-value store used for non-authoritative tenant and user caching.

Two implementations share the ``KeyValueStore`` protocol:

* ``InMemoryKeyValueStore`` -- process-local TTL dict for development and
  tests, or when no Redis URL is configured.
* ``RedisKeyValueStore`` -- shared cache across API workers backed by
  ``redis.asyncio``.

Store implementations raise ``CacheUnavailableError`` for backend failures.
Callers treat the cache as best-effort and fall through to the database.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Protocol, runtime_checkable

import redis.asyncio as redis_asyncio
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


class CacheUnavailableError(Exception):
    """The cache backend could not serve a request."""


@runtime_checkable
class KeyValueStore(Protocol):
    """Minimal get/set/delete interface with per-key TTL."""

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str, ttl_seconds: int) -> None: ...

    async def delete(self, *keys: str) -> None: ...

    async def ping(self) -> bool: ...

    async def close(self) -> None: ...


class InMemoryKeyValueStore:
    """Thread-safe TTL dict.

    Parameters
    ----------
    max_entries:
        Entry cap.  When reached, expired entries are purged first and then
        the entry closest to expiry is evicted.
    """

    def __init__(self, max_entries: int = 10_000) -> None:
        self._entries: dict[str, tuple[str, float]] = {}
        self._lock = threading.Lock()
        self._max_entries = max_entries

    async def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if time.monotonic() >= expires_at:
                del self._entries[key]
                return None
            return value

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        now = time.monotonic()
        with self._lock:
            if key not in self._entries and len(self._entries) >= self._max_entries:
                self._evict(now)
            self._entries[key] = (value, now + ttl_seconds)

    async def delete(self, *keys: str) -> None:
        with self._lock:
            for key in keys:
                self._entries.pop(key, None)

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        with self._lock:
            self._entries.clear()

    def _evict(self, now: float) -> None:
        expired = [k for k, (_, exp) in self._entries.items() if now >= exp]
        for key in expired:
            del self._entries[key]
        if len(self._entries) >= self._max_entries:
            oldest = min(self._entries, key=lambda k: self._entries[k][1])
            del self._entries[oldest]

    def __len__(self) -> int:
        return len(self._entries)


class RedisKeyValueStore:
    """Redis-backed store.  Every backend error surfaces as ``CacheUnavailableError``."""

    def __init__(self, client: redis_asyncio.Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> RedisKeyValueStore:
        client = redis_asyncio.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
            retry_on_timeout=True,
            health_check_interval=30,
        )
        return cls(client)

    async def get(self, key: str) -> str | None:
        try:
            return await self._client.get(key)
        except RedisError as exc:
            raise CacheUnavailableError(f"GET {key} failed: {exc}") from exc

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            await self._client.set(key, value, ex=ttl_seconds)
        except RedisError as exc:
            raise CacheUnavailableError(f"SET {key} failed: {exc}") from exc

    async def delete(self, *keys: str) -> None:
        if not keys:
            return
        try:
            await self._client.delete(*keys)
        except RedisError as exc:
            raise CacheUnavailableError(f"DEL {' '.join(keys)} failed: {exc}") from exc

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except RedisError as exc:
            logger.warning("Redis ping failed: %s", exc)
            return False

    async def close(self) -> None:
        await self._client.aclose()


def create_store(redis_url: str | None) -> KeyValueStore:
    """Return a Redis store when *redis_url* is set, else an in-memory store."""
    if redis_url:
        logger.info("Using Redis key-value cache")
        return RedisKeyValueStore.from_url(redis_url)
    logger.info("No Redis URL configured; using in-process key-value cache")
    return InMemoryKeyValueStore()
