"""Redis cache stores.

Two strategies with the same observable behavior:

- ``AsyncRedisStore`` writes each entry, its expiry and its tag set updates in
  one MULTI/EXEC transaction, and invalidates by paging through tag sets with
  SSCAN (or the keyspace with SCAN) from the client.
- ``AsyncRedisScriptStore`` performs invalidation inside Lua scripts so each
  invalidation is a single indivisible server-side step. The scripts touch
  keys not passed in KEYS, so they are not suitable for Redis Cluster.

Tag set TTLs require Redis 7 (``EXPIRE ... GT|NX``).
"""

from __future__ import annotations

import asyncio
import base64
import json
import logging
import re
from collections.abc import Callable, Iterable, Mapping
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any
from uuid import UUID

import redis.asyncio
from redis.exceptions import RedisError

from querycache.exceptions import StoreReadError, StoreWriteError
from querycache.tag_index import get_total_ttl
from querycache.types import CacheEntry, CacheOptions

logger = logging.getLogger(__name__)

_TYPE_KEY = "__querycache_type__"

_DECODERS: dict[str, Callable[[Any], Any]] = {
    "datetime": datetime.fromisoformat,
    "date": date.fromisoformat,
    "time": time.fromisoformat,
    "decimal": Decimal,
    "uuid": UUID,
    "bytes": base64.b64decode,
    "tuple": tuple,
    "set": set,
    "frozenset": frozenset,
    "dict": dict,
}

_INVALIDATE_SCRIPT = """
for _, tag_key in ipairs(KEYS) do
    local members = redis.call('SMEMBERS', tag_key)
    for i = 1, #members, 500 do
        redis.call('DEL', unpack(members, i, math.min(i + 499, #members)))
    end
    redis.call('DEL', tag_key)
end
return #KEYS
"""

_INVALIDATE_ALL_SCRIPT = """
local cursor = '0'
local deleted = 0
repeat
    local page = redis.call('SCAN', cursor, 'MATCH', ARGV[1], 'COUNT', ARGV[2])
    cursor = page[1]
    if #page[2] > 0 then
        deleted = deleted + redis.call('DEL', unpack(page[2]))
    end
until cursor == '0'
return deleted
"""


def _marked(kind: str, value: Any) -> dict[str, Any]:
    return {_TYPE_KEY: kind, "value": value}


def _encode_value(value: Any, active: set[int]) -> Any:
    """Convert a result to JSON data, marking what JSON would not preserve.

    Mappings keep their JSON object form only when every key is a string;
    other mappings are stored as marked lists of pairs.
    """
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    # datetime is a subclass of date
    if isinstance(value, datetime):
        return _marked("datetime", value.isoformat())
    if isinstance(value, date):
        return _marked("date", value.isoformat())
    if isinstance(value, time):
        return _marked("time", value.isoformat())
    if isinstance(value, Decimal):
        return _marked("decimal", str(value))
    if isinstance(value, UUID):
        return _marked("uuid", str(value))
    if isinstance(value, (bytes, bytearray)):
        return _marked("bytes", base64.b64encode(value).decode("ascii"))

    if not isinstance(value, (Mapping, list, tuple, set, frozenset)):
        raise TypeError(
            f"Object of type {type(value).__name__} is not JSON serializable"
        )

    marker = id(value)
    if marker in active:
        raise ValueError("Circular reference detected")
    active.add(marker)
    try:
        if isinstance(value, Mapping):
            if _TYPE_KEY not in value and all(isinstance(k, str) for k in value):
                return {k: _encode_value(v, active) for k, v in value.items()}
            pairs = [
                [_encode_value(k, active), _encode_value(v, active)]
                for k, v in value.items()
            ]
            return _marked("dict", pairs)
        items = [_encode_value(item, active) for item in value]
        if isinstance(value, list):
            return items
        if isinstance(value, tuple):
            return _marked("tuple", items)
        if isinstance(value, frozenset):
            return _marked("frozenset", items)
        return _marked("set", items)
    finally:
        active.discard(marker)


def _decode_value(obj: dict[str, Any]) -> Any:
    kind = obj.get(_TYPE_KEY)
    if kind is None:
        return obj
    return _DECODERS[kind](obj["value"])


def _serialize_entry(entry: CacheEntry[object]) -> str:
    """Serialize a cache entry to JSON."""
    return json.dumps(
        {
            "created_at": entry.created_at,
            "options": {
                "ttl": entry.options.ttl,
                "swr": entry.options.swr,
                "tags": sorted(entry.options.tags),
            },
            "result": _encode_value(entry.result, set()),
        }
    )


def _deserialize_entry(data: bytes | str) -> CacheEntry[object]:
    """Deserialize JSON to a cache entry."""
    if isinstance(data, bytes):
        data = data.decode("utf-8")
    obj = json.loads(data, object_hook=_decode_value)
    options = obj["options"]
    return CacheEntry(
        created_at=obj["created_at"],
        options=CacheOptions(
            ttl=options["ttl"],
            swr=options["swr"],
            tags=frozenset(options["tags"]),
        ),
        result=obj["result"],
    )


def _escape_pattern(text: str) -> str:
    """Escape glob metacharacters for SCAN MATCH."""
    return re.sub(r"([*?\[\]\\])", r"\\\1", text)


class AsyncRedisStore:
    """Async Redis cache store using transactions and client-side scans."""

    def __init__(
        self,
        client: redis.asyncio.Redis,
        *,
        prefix: str = "querycache",
        scan_count: int = 100,
    ) -> None:
        if scan_count < 1:
            raise ValueError("scan_count must be at least 1")
        self._client = client
        self._prefix = prefix
        self._scan_count = scan_count

    @classmethod
    def from_url(cls, url: str, **kwargs: Any) -> AsyncRedisStore:
        """Create a store with its own connection pool."""
        return cls(redis.asyncio.from_url(url), **kwargs)

    def _query_key(self, key: str) -> str:
        """Generate full Redis key for cache entries."""
        return f"{self._prefix}:query:{key}"

    def _tag_key(self, tag: str) -> str:
        """Generate full Redis key for tag sets."""
        return f"{self._prefix}:tag:{tag}"

    def _namespace_pattern(self) -> str:
        return f"{_escape_pattern(self._prefix)}:*"

    async def get(self, key: str) -> CacheEntry[object] | None:
        """Get a cache entry by key."""
        try:
            data = await self._client.get(self._query_key(key))
        except RedisError as e:
            raise StoreReadError(f"Failed to read cache entry {key}") from e
        if data is None:
            return None
        try:
            return _deserialize_entry(data)
        except (ValueError, KeyError, TypeError) as e:
            raise StoreReadError(f"Corrupt cache entry {key}") from e

    async def set(self, key: str, entry: CacheEntry[object]) -> None:
        """Store a cache entry and update its tag sets in one transaction."""
        query_key = self._query_key(key)
        total_ttl = get_total_ttl(entry.options)
        try:
            payload = _serialize_entry(entry)
        except (TypeError, ValueError) as e:
            raise StoreWriteError(f"Failed to serialize cache entry {key}") from e

        try:
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.set(query_key, payload)
                if total_ttl > 0:
                    pipe.expire(query_key, total_ttl)

                for tag in entry.options.tags:
                    tag_key = self._tag_key(tag)
                    pipe.sadd(tag_key, query_key)
                    if total_ttl > 0:
                        # GT only raises an existing expiry, NX sets a missing one
                        pipe.expire(tag_key, total_ttl, gt=True)
                        pipe.expire(tag_key, total_ttl, nx=True)
                    else:
                        pipe.persist(tag_key)

                await pipe.execute()
        except RedisError as e:
            raise StoreWriteError(f"Failed to write cache entry {key}") from e

    async def invalidate(self, tags: Iterable[str]) -> None:
        """Delete every entry referenced by the given tags."""
        unique = list(dict.fromkeys(tags))
        if not unique:
            return
        try:
            await asyncio.gather(*(self._invalidate_tag(tag) for tag in unique))
        except RedisError as e:
            raise StoreWriteError(f"Failed to invalidate tags {unique}") from e
        logger.debug("Invalidated %d tag(s) under %s", len(unique), self._prefix)

    async def _invalidate_tag(self, tag: str) -> None:
        tag_key = self._tag_key(tag)
        cursor: int = 0
        while True:
            cursor, members = await self._client.sscan(
                tag_key, cursor, count=self._scan_count
            )
            if members:
                await self._client.delete(*members)
            if cursor == 0:
                break
        await self._client.delete(tag_key)

    async def invalidate_all(self) -> None:
        """Delete every entry and tag set under this store's prefix."""
        cursor: int = 0
        pattern = self._namespace_pattern()
        try:
            while True:
                cursor, keys = await self._client.scan(
                    cursor, match=pattern, count=self._scan_count
                )
                if keys:
                    await self._client.delete(*keys)
                if cursor == 0:
                    break
        except RedisError as e:
            raise StoreWriteError("Failed to invalidate all cache entries") from e

    async def disconnect(self) -> None:
        """Close the Redis connection."""
        await self._client.aclose()

    async def tag_ttl(self, tag: str) -> int | None:
        """Remaining seconds of a tag set, None if it has no expiry."""
        ttl = await self._client.ttl(self._tag_key(tag))
        return ttl if ttl >= 0 else None

    async def tag_members(self, tag: str) -> set[str]:
        """Keys currently recorded under a tag, without the store prefix."""
        members = await self._client.smembers(self._tag_key(tag))
        prefix = self._query_key("")
        result: set[str] = set()
        for member in members:
            if isinstance(member, bytes):
                member = member.decode("utf-8")
            result.add(member.removeprefix(prefix))
        return result


class AsyncRedisScriptStore(AsyncRedisStore):
    """Async Redis cache store that invalidates with server-side Lua scripts."""

    def __init__(
        self,
        client: redis.asyncio.Redis,
        *,
        prefix: str = "querycache",
        scan_count: int = 100,
    ) -> None:
        super().__init__(client, prefix=prefix, scan_count=scan_count)
        self._invalidate_script = client.register_script(_INVALIDATE_SCRIPT)
        self._invalidate_all_script = client.register_script(_INVALIDATE_ALL_SCRIPT)

    async def invalidate(self, tags: Iterable[str]) -> None:
        """Delete every entry referenced by the given tags in one script call."""
        tag_keys = [self._tag_key(tag) for tag in dict.fromkeys(tags)]
        if not tag_keys:
            return
        try:
            await self._invalidate_script(keys=tag_keys)
        except RedisError as e:
            raise StoreWriteError(f"Failed to invalidate tags {tag_keys}") from e
        logger.debug("Invalidated %d tag(s) under %s", len(tag_keys), self._prefix)

    async def invalidate_all(self) -> None:
        """Delete every entry and tag set under the prefix in one script call."""
        try:
            await self._invalidate_all_script(
                keys=[], args=[self._namespace_pattern(), self._scan_count]
            )
        except RedisError as e:
            raise StoreWriteError("Failed to invalidate all cache entries") from e
