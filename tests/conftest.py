"""Pytest configuration and shared fixtures."""

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from repocache.cache.manager import CacheManager, reset_cache_manager
from repocache.cache.store import MISSING
from repocache.repository import CachedRepository, RepositoryCacheConfig, clear_cache_hit_status


class StubRepository:
    """Really simple list-backed repository with call counters."""

    def __init__(self):
        self._all = [1, 2, 3, 4, 5]
        self.calls: dict[str, int] = {}

    def _count(self, name: str) -> None:
        self.calls[name] = self.calls.get(name, 0) + 1

    def all(self) -> list[int]:
        self._count("all")
        return list(self._all)

    def find(self, i: int):
        self._count("find")
        if i < 0 or i >= len(self._all):
            return None
        return self._all[i]

    def delete(self, i: int) -> bool:
        self._count("delete")
        del self._all[i]
        return True

    def insert(self) -> bool:
        self._count("insert")
        self._all.append(self._all[-1] + 1)
        return True

    def all_without_cache(self) -> list[int]:
        """For testing how excludes work in practice."""
        self._count("all_without_cache")
        return list(self._all)

    def find_many(self, indexes: list[int]) -> list[int]:
        self._count("find_many")
        return [self._all[i] for i in indexes if 0 <= i < len(self._all)]

    def find_many_without(self, params: dict) -> list[int]:
        self._count("find_many_without")
        return [
            self._all[i]
            for i in params["with"]
            if i not in params["without"] and 0 <= i < len(self._all)
        ]

    def empty(self) -> list[int]:
        self._count("empty")
        return []

    def explode(self, message: str):
        self._count("explode")
        raise ValueError(message)


class AsyncStubRepository:
    """Repository with coroutine methods."""

    def __init__(self):
        self.calls = 0
        self.name = "async-stub"

    async def find(self, i: int) -> dict:
        self.calls += 1
        return {"id": i, "calls": self.calls}


class CachedStubRepository(CachedRepository[StubRepository]):
    repository_class = StubRepository
    key_prefix = "stubs"
    excludes = ("insert", "delete", "all_without_cache")
    tag_cleaners = ("insert", "delete")
    tags = ("stubs",)


@pytest.fixture(autouse=True)
def reset_cache_state():
    """Reset the global cache manager and hit status around each test."""
    reset_cache_manager()
    clear_cache_hit_status()
    yield
    reset_cache_manager()
    clear_cache_hit_status()


@pytest.fixture
def cache_manager(tmp_path: Path) -> CacheManager:
    """Provide a fresh cache manager for each test."""
    return CacheManager(db_path=tmp_path / "test_cache.db", max_memory_items=100)


@pytest.fixture
def cache_config() -> RepositoryCacheConfig:
    """Enabled, tagged, quiet cache configuration."""
    return RepositoryCacheConfig(ttl=5, enabled=True, use_tags=True, debug=False)


@pytest.fixture
def stub_repository() -> StubRepository:
    return StubRepository()


@pytest.fixture
def cached_repository(stub_repository, cache_config, cache_manager) -> CachedStubRepository:
    """Cached stub repository backed by a temporary SQLite store."""
    return CachedStubRepository(stub_repository, config=cache_config, store=cache_manager)


@pytest.fixture
def mock_store() -> MagicMock:
    """Cache store mock that always misses."""
    store = MagicMock()
    store.get = AsyncMock(return_value=MISSING)
    store.put = AsyncMock(return_value=None)
    store.invalidate = AsyncMock(return_value=0)
    return store
