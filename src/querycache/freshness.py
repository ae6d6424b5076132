"""Freshness classification for cache entries."""

from __future__ import annotations

import time
from typing import Any

from querycache.types import CacheEntry, Freshness


def now_ms() -> int:
    """Current Unix time in milliseconds."""
    return int(time.time() * 1000)


def classify(entry: CacheEntry[Any] | None, now: int) -> Freshness:
    """Classify an entry as fresh, stale or missing at time ``now`` (ms).

    An entry with only ``swr`` has a zero-width fresh window: it is served
    stale for ``swr`` seconds while always refreshing. An entry with neither
    ``ttl`` nor ``swr`` is always a miss.
    """
    if entry is None:
        return Freshness.MISS

    elapsed = now - entry.created_at
    fresh_ms = (entry.options.ttl or 0) * 1000

    if elapsed < fresh_ms:
        return Freshness.FRESH
    if entry.options.swr is not None and elapsed < fresh_ms + entry.options.swr * 1000:
        return Freshness.STALE
    return Freshness.MISS


__all__ = ["classify", "now_ms"]
