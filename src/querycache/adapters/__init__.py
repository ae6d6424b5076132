"""Cache stores for querycache (async only)."""

from contextlib import suppress

from querycache.adapters.base import AsyncCacheStore
from querycache.adapters.memory import AsyncMemoryStore

# Optional stores - only available when dependencies are installed
with suppress(ImportError):
    from querycache.adapters.redis import AsyncRedisScriptStore, AsyncRedisStore

__all__ = [
    "AsyncCacheStore",
    "AsyncMemoryStore",
    "AsyncRedisScriptStore",
    "AsyncRedisStore",
]
