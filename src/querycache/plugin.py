"""Host integration - intercepts read queries that ask to be cached.

The host framework calls ``on_query`` for every read with the model and
operation names, the query arguments and a ``proceed`` coroutine function that
executes the query. Queries whose arguments carry a ``cache`` key are routed
through the coordinator; everything else goes straight to ``proceed``.

Usage:
    plugin = define_cache_plugin(AsyncRedisStore.from_url("redis://localhost"))
    user = await plugin.on_query(
        model="User",
        operation="findFirst",
        args={"where": {"id": 1}, "cache": {"ttl": 60, "tags": ["user1"]}},
        proceed=run_query,
    )
    await plugin.invalidate(["user1"])
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable, Mapping
from typing import Any, TypeVar

from querycache.adapters.base import AsyncCacheStore
from querycache.coordinator import CacheCoordinator, create_coordinator
from querycache.freshness import now_ms
from querycache.schemas import parse_cache_envelope
from querycache.types import CacheStatus, Proceed

T = TypeVar("T")


class CachePlugin:
    """Caches read queries that opt in through a ``cache`` argument."""

    def __init__(
        self,
        store: AsyncCacheStore,
        *,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._coordinator = create_coordinator(store=store, clock=clock)

    @property
    def coordinator(self) -> CacheCoordinator:
        return self._coordinator

    @property
    def status(self) -> CacheStatus | None:
        """Status of the last cached result returned, or None before the first."""
        return self._coordinator.status

    @property
    def revalidation(self) -> asyncio.Task[Any] | None:
        """Task that resolves when the last stale result has been revalidated."""
        return self._coordinator.revalidation

    async def on_query(
        self,
        *,
        model: str,
        operation: str,
        args: Any,
        proceed: Proceed[T],
        caller_id: str | None = None,
    ) -> T:
        """Serve a read query, from the cache when it asks to be cached.

        Raises:
            PreconditionError: If the ``cache`` argument is malformed
        """
        if not isinstance(args, Mapping) or args.get("cache") is None:
            return await proceed(args)

        options = parse_cache_envelope(args, operation)
        if options is None:
            return await proceed(args)

        return await self._coordinator.query(
            model=model,
            operation=operation,
            args=args,
            proceed=proceed,
            options=options,
            caller_id=caller_id,
        )

    async def invalidate(self, tags: str | Iterable[str]) -> None:
        """Delete every cached entry carrying any of the given tags."""
        await self._coordinator.invalidate(tags)

    async def invalidate_all(self) -> None:
        """Delete every cached entry."""
        await self._coordinator.invalidate_all()

    async def disconnect(self) -> None:
        await self._coordinator.disconnect()


def define_cache_plugin(
    store: AsyncCacheStore,
    *,
    clock: Callable[[], int] = now_ms,
) -> CachePlugin:
    """Create a cache plugin backed by ``store``."""
    return CachePlugin(store, clock=clock)


__all__ = ["CachePlugin", "define_cache_plugin"]
