"""Cache coordinator - decides how each read query is served.

For every query the coordinator:
- fingerprints the query identity into a key
- reads the entry from the store and classifies it
- serves it (fresh), serves it while refreshing in the background (stale),
  or runs the query and writes the result (miss)

Cache writes are best-effort: failures are logged and never fail the read.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from querycache.adapters.base import AsyncCacheStore
from querycache.fingerprint import fingerprint
from querycache.freshness import classify, now_ms
from querycache.types import (
    CacheEntry,
    CacheOptions,
    CacheStatus,
    Freshness,
    Proceed,
    QueryResult,
)

T = TypeVar("T")

logger = logging.getLogger(__name__)


@dataclass
class CacheCoordinator:
    """Coordinates cache reads, background revalidation and writes.

    ``status`` and ``revalidation`` hold the outcome of the most recent call
    only; concurrent callers should use the QueryResult returned by
    ``execute()`` instead.
    """

    _store: AsyncCacheStore
    _clock: Callable[[], int] = now_ms
    _status: CacheStatus | None = None
    _revalidation: asyncio.Task[Any] | None = None
    _background_tasks: set[asyncio.Task[Any]] = field(default_factory=set)

    @property
    def store(self) -> AsyncCacheStore:
        return self._store

    @property
    def status(self) -> CacheStatus | None:
        """Status of the last result returned, or None before the first."""
        return self._status

    @property
    def revalidation(self) -> asyncio.Task[Any] | None:
        """Task resolving to the refreshed result of the last stale hit."""
        return self._revalidation

    async def query(
        self,
        *,
        model: str,
        operation: str,
        args: Any,
        proceed: Proceed[T],
        options: CacheOptions,
        caller_id: str | None = None,
    ) -> T:
        """Run a query through the cache and return only its result."""
        outcome = await self.execute(
            model=model,
            operation=operation,
            args=args,
            proceed=proceed,
            options=options,
            caller_id=caller_id,
        )
        return outcome.result

    async def execute(
        self,
        *,
        model: str,
        operation: str,
        args: Any,
        proceed: Proceed[T],
        options: CacheOptions,
        caller_id: str | None = None,
    ) -> QueryResult[T]:
        """Run a query through the cache.

        Args:
            model: Model being queried
            operation: Read operation name
            args: Query arguments, passed unchanged to ``proceed``
            proceed: Executes the query against the source of truth
            options: Validated cache options
            caller_id: Identity of the caller, if results differ per caller

        Returns:
            The result together with its cache status and, for stale hits,
            the background revalidation task

        Raises:
            SerializationError: If the query identity cannot be fingerprinted
            StoreReadError: If the store cannot be read
        """
        key = fingerprint(model, operation, args, caller_id)
        entry = await self._store.get(key)
        freshness = classify(entry, self._clock())

        if entry is not None and freshness is Freshness.FRESH:
            logger.debug("Cache hit for %s.%s (%s)", model, operation, key)
            self._status = "hit"
            return QueryResult(status="hit", result=entry.result)

        if entry is not None and freshness is Freshness.STALE:
            logger.debug("Stale cache hit for %s.%s (%s)", model, operation, key)
            task = asyncio.create_task(self._revalidate(key, args, proceed, options))
            self._track(task)
            self._revalidation = task
            self._status = "stale"
            return QueryResult(status="stale", result=entry.result, revalidation=task)

        logger.debug("Cache miss for %s.%s (%s)", model, operation, key)
        result = await proceed(args)
        await self._write(key, options, result)
        self._status = "miss"
        return QueryResult(status="miss", result=result)

    async def invalidate(self, tags: str | Iterable[str]) -> None:
        """Delete every cached entry carrying any of the given tags.

        A single tag may be passed as a bare string.
        """
        if isinstance(tags, str):
            tags = [tags]
        await self._store.invalidate(list(tags))

    async def invalidate_all(self) -> None:
        """Delete every cached entry."""
        await self._store.invalidate_all()

    async def disconnect(self) -> None:
        """Disconnect from the storage backend."""
        await self._store.disconnect()

    # -------------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------------

    async def _write(self, key: str, options: CacheOptions, result: Any) -> None:
        entry: CacheEntry[object] = CacheEntry(
            created_at=self._clock(),
            options=options,
            result=result,
        )
        try:
            await self._store.set(key, entry)
        except Exception:
            logger.warning("Failed to cache query result for %s", key, exc_info=True)

    async def _revalidate(
        self,
        key: str,
        args: Any,
        proceed: Proceed[T],
        options: CacheOptions,
    ) -> T:
        """Refresh a stale entry; resolves with the fresh result."""
        result = await proceed(args)
        await self._write(key, options, result)
        return result

    def _track(self, task: asyncio.Task[Any]) -> None:
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        task.add_done_callback(_log_failed_revalidation)


def _log_failed_revalidation(task: asyncio.Task[Any]) -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.warning("Background revalidation failed", exc_info=error)


def create_coordinator(
    *,
    store: AsyncCacheStore,
    clock: Callable[[], int] = now_ms,
) -> CacheCoordinator:
    """Create a cache coordinator.

    Args:
        store: Backing cache store
        clock: Returns the current Unix time in milliseconds

    Returns:
        CacheCoordinator instance with query, execute, invalidate,
        invalidate_all and disconnect
    """
    return CacheCoordinator(_store=store, _clock=clock)


__all__ = ["CacheCoordinator", "create_coordinator"]
