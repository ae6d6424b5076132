"""Deterministic cache keys for query identities.

A query's identity (model, operation, arguments and caller) is first reduced
to a canonical, order-independent structure and then hashed with xxHash.
Containers are tagged with their kind in the canonical form so that, for
example, a mapping and a list of pairs never produce the same key.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

import xxhash

from querycache.exceptions import SerializationError


def _encode(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def _lower_case_first(name: str) -> str:
    return name[:1].lower() + name[1:]


def canonicalize(value: Any) -> Any:
    """Convert a structured value into a stable, JSON-encodable form.

    Raises:
        SerializationError: If the value contains a cycle or anything that
            is not plain data.
    """
    return _canonicalize(value, set())


def _canonicalize(value: Any, active: set[int]) -> Any:
    if isinstance(value, Enum):
        kind = f"{type(value).__module__}.{type(value).__qualname__}"
        return ["enum", kind, _canonicalize(value.value, active)]
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    # datetime is a subclass of date
    if isinstance(value, datetime):
        return ["datetime", value.isoformat()]
    if isinstance(value, date):
        return ["date", value.isoformat()]
    if isinstance(value, time):
        return ["time", value.isoformat()]
    if isinstance(value, Decimal):
        return ["decimal", str(value)]
    if isinstance(value, UUID):
        return ["uuid", str(value)]
    if isinstance(value, (bytes, bytearray)):
        return ["bytes", bytes(value).hex()]

    if not isinstance(value, (Mapping, list, tuple, set, frozenset)):
        raise SerializationError(
            f"Cannot fingerprint value of type {type(value).__name__}"
        )

    marker = id(value)
    if marker in active:
        raise SerializationError("Cannot fingerprint a cyclic reference")
    active.add(marker)
    try:
        if isinstance(value, Mapping):
            pairs = [
                [_canonicalize(k, active), _canonicalize(v, active)]
                for k, v in value.items()
            ]
            pairs.sort(key=lambda pair: _encode(pair[0]))
            return ["map", pairs]
        if isinstance(value, (set, frozenset)):
            members = [_canonicalize(item, active) for item in value]
            members.sort(key=_encode)
            return ["set", members]
        return ["list", [_canonicalize(item, active) for item in value]]
    finally:
        active.discard(marker)


def fingerprint(
    model: str,
    operation: str,
    args: Any,
    caller_id: str | None = None,
) -> str:
    """Generate the cache key for a query.

    Args:
        model: Name of the model being queried
        operation: Name of the read operation (e.g. "findMany")
        args: Query arguments, any nesting of plain data
        caller_id: Identity of the caller, for per-caller results

    Returns:
        A 16 character hex digest
    """
    identity = {
        "args": args,
        "model": model,
        "operation": operation,
        "caller_id": caller_id,
    }
    try:
        canonical = canonicalize(identity)
    except SerializationError as e:
        raise SerializationError(
            f"Failed to serialize cache entry for "
            f"{_lower_case_first(model)}.{operation}: {e}"
        ) from e
    return xxhash.xxh3_64_hexdigest(_encode(canonical).encode("utf-8"))


__all__ = ["canonicalize", "fingerprint"]
