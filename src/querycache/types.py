"""Core types for querycache."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, Literal, TypeVar

T = TypeVar("T")

CacheStatus = Literal["hit", "stale", "miss"]

# Executes the underlying query; receives the original query arguments.
Proceed = Callable[[Any], Awaitable[T]]


class Freshness(Enum):
    """Classification of a cache entry at a point in time."""

    FRESH = "fresh"
    STALE = "stale"
    MISS = "miss"


@dataclass(frozen=True, slots=True)
class CacheOptions:
    """Validated per-query cache options. Durations are in seconds."""

    ttl: int | None = None
    swr: int | None = None
    tags: frozenset[str] = field(default_factory=frozenset)


@dataclass(frozen=True, slots=True)
class CacheEntry(Generic[T]):
    """A cached query result with metadata."""

    created_at: int  # Unix timestamp ms
    options: CacheOptions
    result: T


@dataclass(frozen=True, slots=True)
class QueryResult(Generic[T]):
    """Outcome of a single coordinated query."""

    status: CacheStatus
    result: T
    revalidation: asyncio.Task[Any] | None = None
