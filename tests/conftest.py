"""Shared pytest fixtures."""

import pytest

from querycache import AsyncMemoryStore, CacheCoordinator, create_coordinator


class FakeClock:
    """Controllable millisecond clock."""

    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += int(seconds * 1000)


@pytest.fixture
def clock() -> FakeClock:
    """Create a fake clock for each test."""
    return FakeClock()


@pytest.fixture
def memory_store(clock: FakeClock) -> AsyncMemoryStore:
    """Create a fresh AsyncMemoryStore driven by the fake clock."""
    return AsyncMemoryStore(clock=clock)


@pytest.fixture
def coordinator(memory_store: AsyncMemoryStore, clock: FakeClock) -> CacheCoordinator:
    """Create a coordinator over the memory store."""
    return create_coordinator(store=memory_store, clock=clock)
