"""Best-effort key-value caching."""

from commerce_core.cache.store import (
    CacheUnavailableError,
    InMemoryKeyValueStore,
    KeyValueStore,
    RedisKeyValueStore,
    create_store,
)

__all__ = [
    "CacheUnavailableError",
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "RedisKeyValueStore",
    "create_store",
]
