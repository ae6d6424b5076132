"""Validation of cache options supplied by callers."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr, ValidationError

from querycache.exceptions import PreconditionError
from querycache.types import CacheOptions

PositiveSeconds = Annotated[StrictInt, Field(ge=1)]


class CacheOptionsSchema(BaseModel):
    """Cache options as written by the caller.

    Example: ``{"ttl": 60, "tags": ["user1"]}``
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    ttl: PositiveSeconds | None = None
    swr: PositiveSeconds | None = None
    tags: list[StrictStr] | None = None

    def to_options(self) -> CacheOptions:
        return CacheOptions(
            ttl=self.ttl,
            swr=self.swr,
            tags=frozenset(self.tags or ()),
        )


class CacheEnvelopeSchema(BaseModel):
    """Query arguments that may carry a ``cache`` key."""

    model_config = ConfigDict(extra="allow")

    cache: CacheOptionsSchema | None = None


def parse_cache_options(raw: Any) -> CacheOptions:
    """Validate raw cache options.

    Raises:
        PreconditionError: If the options are malformed (e.g. ``ttl=0``)
    """
    try:
        return CacheOptionsSchema.model_validate(raw).to_options()
    except ValidationError as e:
        raise PreconditionError(f"Invalid cache options: {e}") from e


def parse_cache_envelope(
    args: Mapping[str, Any], operation: str
) -> CacheOptions | None:
    """Extract validated cache options from query arguments, if any.

    Raises:
        PreconditionError: If the ``cache`` key holds malformed options
    """
    try:
        envelope = CacheEnvelopeSchema.model_validate(dict(args))
    except ValidationError as e:
        raise PreconditionError(f"Invalid {operation} cache options: {e}") from e
    if envelope.cache is None:
        return None
    return envelope.cache.to_options()


__all__ = [
    "CacheEnvelopeSchema",
    "CacheOptionsSchema",
    "parse_cache_envelope",
    "parse_cache_options",
]
