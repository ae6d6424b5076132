"""querycache - Tag-invalidated read-query caching with stale-while-revalidate."""

from contextlib import suppress

# Stores (async only)
from querycache.adapters import (
    AsyncCacheStore,
    AsyncMemoryStore,
)

# Coordinator API
from querycache.coordinator import CacheCoordinator, create_coordinator

# Errors
from querycache.exceptions import (
    CacheError,
    PreconditionError,
    SerializationError,
    StoreError,
    StoreReadError,
    StoreWriteError,
)
from querycache.fingerprint import canonicalize, fingerprint
from querycache.freshness import classify, now_ms

# Host integration
from querycache.plugin import CachePlugin, define_cache_plugin
from querycache.schemas import (
    CacheOptionsSchema,
    parse_cache_envelope,
    parse_cache_options,
)
from querycache.tag_index import TagIndex, get_total_ttl

# Core types
from querycache.types import (
    CacheEntry,
    CacheOptions,
    CacheStatus,
    Freshness,
    QueryResult,
)

# Optional store imports - only available when dependencies are installed
with suppress(ImportError):
    from querycache.adapters import AsyncRedisScriptStore, AsyncRedisStore

__version__ = "0.1.0"

__all__ = [
    "AsyncCacheStore",
    "AsyncMemoryStore",
    "AsyncRedisScriptStore",
    "AsyncRedisStore",
    "CacheCoordinator",
    "CacheEntry",
    "CacheError",
    "CacheOptions",
    "CacheOptionsSchema",
    "CachePlugin",
    "CacheStatus",
    "Freshness",
    "PreconditionError",
    "QueryResult",
    "SerializationError",
    "StoreError",
    "StoreReadError",
    "StoreWriteError",
    "TagIndex",
    "canonicalize",
    "classify",
    "create_coordinator",
    "define_cache_plugin",
    "fingerprint",
    "get_total_ttl",
    "now_ms",
    "parse_cache_envelope",
    "parse_cache_options",
]
