"""Tag index bookkeeping.

Each tag maps to the set of store keys written with it. A tag set must live
at least as long as the longest-lived entry that references it, so its expiry
only ever grows, except that an untimed write removes the expiry entirely.
"""

from __future__ import annotations

import math
from collections.abc import Callable
from dataclasses import dataclass, field

from querycache.freshness import now_ms
from querycache.types import CacheOptions


def get_total_ttl(options: CacheOptions) -> int:
    """Seconds the physical record should live (0 means no expiry)."""
    return (options.ttl or 0) + (options.swr or 0)


def next_tag_expiry(current: int | None, total_ttl: int, now: int) -> int | None:
    """Expiry (ms) of a tag set after a write with ``total_ttl`` seconds.

    ``current`` is the tag set's existing expiry, or None if it has none.
    """
    if total_ttl <= 0:
        return None
    candidate = now + total_ttl * 1000
    if current is None or candidate > current:
        return candidate
    return current


@dataclass
class _TagSet:
    members: set[str] = field(default_factory=set)
    expires_at: int | None = None


class TagIndex:
    """In-process tag index with expiring tag sets."""

    def __init__(self, *, clock: Callable[[], int] = now_ms) -> None:
        self._tags: dict[str, _TagSet] = {}
        self._clock = clock

    def _live(self, tag: str) -> _TagSet | None:
        tag_set = self._tags.get(tag)
        if tag_set is None:
            return None
        if tag_set.expires_at is not None and tag_set.expires_at <= self._clock():
            del self._tags[tag]
            return None
        return tag_set

    def add(self, tag: str, key: str, total_ttl: int) -> None:
        """Record that ``key`` was written under ``tag``."""
        tag_set = self._live(tag)
        if tag_set is None:
            tag_set = self._tags[tag] = _TagSet()
        tag_set.members.add(key)
        tag_set.expires_at = next_tag_expiry(
            tag_set.expires_at, total_ttl, self._clock()
        )

    def discard(self, tag: str, key: str) -> None:
        """Forget ``key`` under ``tag``, dropping the tag set once empty."""
        tag_set = self._tags.get(tag)
        if tag_set is None:
            return
        tag_set.members.discard(key)
        if not tag_set.members:
            del self._tags[tag]

    def pop(self, tag: str) -> set[str]:
        """Remove a tag set, returning its members."""
        tag_set = self._live(tag)
        self._tags.pop(tag, None)
        return tag_set.members if tag_set else set()

    def members(self, tag: str) -> set[str]:
        tag_set = self._live(tag)
        return set(tag_set.members) if tag_set else set()

    def ttl(self, tag: str) -> int | None:
        """Remaining seconds before the tag set expires, None if it never does."""
        tag_set = self._live(tag)
        if tag_set is None or tag_set.expires_at is None:
            return None
        return max(0, math.ceil((tag_set.expires_at - self._clock()) / 1000))

    def clear(self) -> None:
        self._tags.clear()


__all__ = ["TagIndex", "get_total_ttl", "next_tag_expiry"]
