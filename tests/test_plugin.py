"""End-to-end tests for the cache plugin over a fake source of truth."""

import pytest

from querycache import (
    AsyncMemoryStore,
    CachePlugin,
    PreconditionError,
    define_cache_plugin,
)


class UserTable:
    """A tiny source of truth with a query entry point."""

    def __init__(self) -> None:
        self.rows: dict[int, dict] = {}
        self.queries = 0

    def create(self, id: int, email: str) -> dict:
        self.rows[id] = {"id": id, "email": email, "name": None}
        return dict(self.rows[id])

    async def find_first(self, args: dict) -> dict | None:
        self.queries += 1
        row = self.rows.get(args["where"]["id"])
        return dict(row) if row else None


@pytest.fixture
def users() -> UserTable:
    return UserTable()


@pytest.fixture
def plugin(memory_store: AsyncMemoryStore, clock) -> CachePlugin:
    return define_cache_plugin(memory_store, clock=clock)


async def find_first(
    plugin: CachePlugin, users: UserTable, id: int, cache: dict | None
) -> dict | None:
    args: dict = {"where": {"id": id}}
    if cache is not None:
        args["cache"] = cache
    return await plugin.on_query(
        model="User",
        operation="findFirst",
        args=args,
        proceed=users.find_first,
    )


class TestTtlScenario:
    """Cached results survive changes to the source until they expire."""

    async def test_hit_after_delete(
        self, plugin: CachePlugin, users: UserTable
    ) -> None:
        assert plugin.status is None
        assert plugin.revalidation is None

        users.create(1, "test@email.com")
        first = await find_first(plugin, users, 1, {"ttl": 60})
        assert first is not None
        assert plugin.status == "miss"

        del users.rows[1]

        second = await find_first(plugin, users, 1, {"ttl": 60})
        assert second == {"id": 1, "email": "test@email.com", "name": None}
        assert plugin.status == "hit"
        assert users.queries == 1

    async def test_different_options_are_cached_separately(
        self, plugin: CachePlugin, users: UserTable
    ) -> None:
        users.create(1, "test@email.com")
        await find_first(plugin, users, 1, {"ttl": 60})
        await find_first(plugin, users, 1, {"ttl": 61})
        assert users.queries == 2

    async def test_ttl_and_swr_serve_fresh_first(
        self, plugin: CachePlugin, users: UserTable
    ) -> None:
        users.create(1, "test@email.com")
        await find_first(plugin, users, 1, {"ttl": 60, "swr": 60})
        users.rows[1]["name"] = "newname"

        result = await find_first(plugin, users, 1, {"ttl": 60, "swr": 60})
        assert result is not None
        assert result["name"] is None
        assert plugin.status == "hit"


class TestSwrScenario:
    """Stale results are served while the source is queried in the background."""

    async def test_stale_then_revalidated(
        self, plugin: CachePlugin, users: UserTable
    ) -> None:
        users.create(1, "test@email.com")
        await find_first(plugin, users, 1, {"swr": 60})
        assert plugin.status == "miss"

        users.rows[1]["name"] = "newname"

        stale = await find_first(plugin, users, 1, {"swr": 60})
        assert stale is not None
        assert stale["name"] is None
        assert plugin.status == "stale"

        revalidation = plugin.revalidation
        assert revalidation is not None
        revalidated = await revalidation
        assert revalidated["name"] == "newname"

        latest = await find_first(plugin, users, 1, {"swr": 60})
        assert latest is not None
        assert latest["name"] == "newname"
        assert plugin.status == "stale"
        assert plugin.revalidation is not revalidation
        await plugin.revalidation


class TestTagScenario:
    """Invalidating tags only affects entries carrying them."""

    async def test_invalidate_by_tags(
        self, plugin: CachePlugin, users: UserTable
    ) -> None:
        users.create(1, "one@email.com")
        users.create(2, "two@email.com")
        user1 = {"ttl": 60, "tags": ["user1"]}
        user2 = {"ttl": 60, "tags": ["user2"]}
        await find_first(plugin, users, 1, user1)
        await find_first(plugin, users, 2, user2)

        users.rows[1]["name"] = "newname"
        users.rows[2]["name"] = "newname"

        await plugin.invalidate([])
        await plugin.invalidate(["these", "tags", "do", "not", "exist"])
        assert (await find_first(plugin, users, 1, user1))["name"] is None
        assert (await find_first(plugin, users, 2, user2))["name"] is None

        await plugin.invalidate(["user1"])
        assert (await find_first(plugin, users, 1, user1))["name"] == "newname"
        assert (await find_first(plugin, users, 2, user2))["name"] is None

    async def test_invalidate_all(
        self, plugin: CachePlugin, users: UserTable
    ) -> None:
        users.create(1, "one@email.com")
        await find_first(plugin, users, 1, {"ttl": 60})
        del users.rows[1]

        await plugin.invalidate_all()
        assert await find_first(plugin, users, 1, {"ttl": 60}) is None


class TestPassthrough:
    """Queries without cache options are not cached."""

    async def test_no_cache_key(self, plugin: CachePlugin, users: UserTable) -> None:
        users.create(1, "one@email.com")
        await find_first(plugin, users, 1, None)
        await find_first(plugin, users, 1, None)
        assert users.queries == 2
        assert plugin.status is None

    async def test_non_mapping_args(self, plugin: CachePlugin) -> None:
        async def proceed(args: object) -> object:
            return args

        result = await plugin.on_query(
            model="User", operation="count", args=None, proceed=proceed
        )
        assert result is None


class TestValidation:
    """Malformed cache options are rejected before reaching the cache."""

    @pytest.mark.parametrize(
        "cache",
        [{"ttl": 0}, {"swr": 0}, {"ttl": 0, "swr": 0}, {"ttl": -1}, {"unknown": 1}],
    )
    async def test_invalid_options(
        self, plugin: CachePlugin, users: UserTable, cache: dict
    ) -> None:
        with pytest.raises(PreconditionError, match="Invalid findFirst"):
            await find_first(plugin, users, 1, cache)
        assert users.queries == 0

    async def test_tags_only_is_recorded(
        self, plugin: CachePlugin, users: UserTable, memory_store: AsyncMemoryStore
    ) -> None:
        users.create(1, "one@email.com")
        await find_first(plugin, users, 1, {"tags": ["test"]})
        assert len(await memory_store.tag_members("test")) == 1
        assert await memory_store.tag_ttl("test") is None
