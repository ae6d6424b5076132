"""Base store protocol for storage backends."""

from collections.abc import Iterable
from typing import Protocol, runtime_checkable

from querycache.types import CacheEntry


@runtime_checkable
class AsyncCacheStore(Protocol):
    """Async cache store interface.

    Operations return None on success. ``get`` raises StoreReadError and the
    other operations raise StoreWriteError when the backend fails.
    """

    async def get(self, key: str) -> CacheEntry[object] | None:
        """Get a cache entry by key."""
        ...

    async def set(self, key: str, entry: CacheEntry[object]) -> None:
        """Store a cache entry and add its key to each of its tag sets."""
        ...

    async def invalidate(self, tags: Iterable[str]) -> None:
        """Delete every entry referenced by the given tags."""
        ...

    async def invalidate_all(self) -> None:
        """Delete every entry and tag set managed by this store."""
        ...

    async def disconnect(self) -> None:
        """Disconnect from the storage backend."""
        ...
