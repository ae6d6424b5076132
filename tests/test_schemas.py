"""Tests for cache option validation."""

import pytest

from querycache import (
    CacheOptions,
    PreconditionError,
    parse_cache_envelope,
    parse_cache_options,
)


class TestParseCacheOptions:
    """Tests for parse_cache_options."""

    def test_full_options(self) -> None:
        options = parse_cache_options({"ttl": 60, "swr": 30, "tags": ["a", "b", "a"]})
        assert options == CacheOptions(ttl=60, swr=30, tags=frozenset({"a", "b"}))

    def test_empty_options(self) -> None:
        assert parse_cache_options({}) == CacheOptions()

    @pytest.mark.parametrize(
        "raw",
        [
            {"ttl": 0},
            {"swr": 0},
            {"ttl": -5},
            {"ttl": 1.5},
            {"ttl": "60"},
            {"ttl": True},
            {"tags": "user1"},
            {"tags": [1]},
            {"ttl": 60, "extra": True},
        ],
    )
    def test_rejects_invalid(self, raw: dict) -> None:
        with pytest.raises(PreconditionError, match="Invalid cache options"):
            parse_cache_options(raw)

    def test_precondition_error_is_value_error(self) -> None:
        with pytest.raises(ValueError):
            parse_cache_options({"ttl": 0})


class TestParseCacheEnvelope:
    """Tests for parse_cache_envelope."""

    def test_extracts_cache_key(self) -> None:
        args = {"where": {"id": 1}, "cache": {"ttl": 60}}
        assert parse_cache_envelope(args, "findFirst") == CacheOptions(ttl=60)

    def test_missing_cache_key(self) -> None:
        assert parse_cache_envelope({"where": {"id": 1}}, "findFirst") is None

    def test_invalid_mentions_operation(self) -> None:
        with pytest.raises(PreconditionError, match="Invalid findMany"):
            parse_cache_envelope({"cache": {"ttl": 0}}, "findMany")
