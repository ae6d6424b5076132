"""In-memory cache store (async only)."""

from __future__ import annotations

import asyncio
import heapq
from collections import OrderedDict
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from querycache.freshness import now_ms
from querycache.tag_index import TagIndex, get_total_ttl
from querycache.types import CacheEntry


@dataclass(slots=True)
class _Record:
    entry: CacheEntry[object]
    expires_at: int | None


class AsyncMemoryStore:
    """Async in-memory cache store with expiry, tags and optional LRU eviction.

    Expired records are swept on write, so records that are never read again
    do not accumulate.
    """

    def __init__(
        self,
        max_items: int | None = None,
        *,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._records: OrderedDict[str, _Record] = OrderedDict()
        self._expiries: list[tuple[int, str]] = []
        self._tags = TagIndex(clock=clock)
        self._max_items = max_items
        self._clock = clock
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._records)

    async def get(self, key: str) -> CacheEntry[object] | None:
        """Get a cache entry by key."""
        async with self._lock:
            record = self._records.get(key)
            if record is None:
                return None
            if record.expires_at is not None and record.expires_at <= self._clock():
                self._drop(key)
                return None
            self._records.move_to_end(key)  # LRU touch
            return record.entry

    async def set(self, key: str, entry: CacheEntry[object]) -> None:
        """Store a cache entry."""
        total_ttl = get_total_ttl(entry.options)
        async with self._lock:
            now = self._clock()
            self._sweep(now)

            previous = self._records.get(key)
            if previous is not None:
                for tag in previous.entry.options.tags - entry.options.tags:
                    self._tags.discard(tag, key)

            expires_at = now + total_ttl * 1000 if total_ttl > 0 else None
            self._records[key] = _Record(entry, expires_at)
            self._records.move_to_end(key)
            if expires_at is not None:
                heapq.heappush(self._expiries, (expires_at, key))
            for tag in entry.options.tags:
                self._tags.add(tag, key, total_ttl)

            if self._max_items and len(self._records) > self._max_items:
                self._drop(next(iter(self._records)))

    async def invalidate(self, tags: Iterable[str]) -> None:
        """Delete every entry referenced by the given tags."""
        async with self._lock:
            for tag in tags:
                for key in self._tags.pop(tag):
                    self._drop(key)

    async def invalidate_all(self) -> None:
        """Delete all entries and tag sets."""
        async with self._lock:
            self._records.clear()
            self._expiries.clear()
            self._tags.clear()

    async def disconnect(self) -> None:
        """Disconnect from the storage backend (no-op for memory)."""
        pass

    async def tag_ttl(self, tag: str) -> int | None:
        """Remaining seconds of a tag set, None if it has no expiry."""
        async with self._lock:
            return self._tags.ttl(tag)

    async def tag_members(self, tag: str) -> set[str]:
        """Keys currently recorded under a tag."""
        async with self._lock:
            return self._tags.members(tag)

    def _drop(self, key: str) -> None:
        """Remove a record and its tag memberships. Caller holds the lock."""
        record = self._records.pop(key, None)
        if record is None:
            return
        for tag in record.entry.options.tags:
            self._tags.discard(tag, key)

    def _sweep(self, now: int) -> None:
        """Drop records whose expiry has passed. Caller holds the lock."""
        while self._expiries and self._expiries[0][0] <= now:
            expires_at, key = heapq.heappop(self._expiries)
            record = self._records.get(key)
            # Skip heap entries left behind by overwrites
            if record is not None and record.expires_at == expires_at:
                self._drop(key)
