"""Tests for the cache gateway."""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from repocache.cache.gateway import CacheGateway, normalize_tags
from repocache.cache.store import MISSING, CacheStore
from repocache.errors import CacheReadError, CacheWriteError


class TestNormalizeTags:
    def test_keeps_order_and_drops_duplicates(self):
        assert normalize_tags(["b", "a", "b"]) == ("b", "a")

    def test_empty(self):
        assert normalize_tags(None) == ()
        assert normalize_tags([]) == ()


class TestCacheGateway:
    """Tests for CacheGateway against a mocked store."""

    @pytest.fixture
    def gateway(self, mock_store):
        return CacheGateway(mock_store)

    @pytest.mark.asyncio
    async def test_get_passes_scope(self, gateway, mock_store):
        """Test that lookups are scoped by tags."""
        mock_store.get = AsyncMock(return_value=[1, 2])

        assert await gateway.get("k", ["users", "users"]) == [1, 2]
        mock_store.get.assert_awaited_once_with("k", ("users",))

    @pytest.mark.asyncio
    async def test_get_miss(self, gateway):
        assert await gateway.get("k") is MISSING

    @pytest.mark.asyncio
    async def test_get_failure_raises_read_error(self, gateway, mock_store):
        """Test that store errors become CacheReadError."""
        mock_store.get = AsyncMock(side_effect=ConnectionError("down"))

        with pytest.raises(CacheReadError) as exc_info:
            await gateway.get("k", ["users"])

        assert exc_info.value.key == "k"
        assert exc_info.value.tags == ("users",)
        assert isinstance(exc_info.value.__cause__, ConnectionError)

    @pytest.mark.asyncio
    async def test_put_converts_ttl_to_seconds(self, gateway, mock_store):
        """Test that the ttl reaches the store in seconds."""
        assert await gateway.put("k", "v", timedelta(minutes=2), ["users"]) is True

        mock_store.put.assert_awaited_once_with("k", "v", 120, ("users",))

    @pytest.mark.asyncio
    async def test_put_rounds_partial_seconds_up(self, gateway, mock_store):
        """Test that sub-second and fractional ttls never round down."""
        await gateway.put("a", "v", timedelta(milliseconds=500))
        await gateway.put("b", "v", timedelta(seconds=1.2))

        assert mock_store.put.await_args_list[0].args[2] == 1
        assert mock_store.put.await_args_list[1].args[2] == 2

    @pytest.mark.asyncio
    async def test_put_failure_raises_write_error(self, gateway, mock_store):
        mock_store.put = AsyncMock(side_effect=OSError("disk full"))

        with pytest.raises(CacheWriteError) as exc_info:
            await gateway.put("k", "v", timedelta(minutes=1))

        assert exc_info.value.key == "k"

    @pytest.mark.asyncio
    async def test_invalidate(self, gateway, mock_store):
        mock_store.invalidate = AsyncMock(return_value=3)

        assert await gateway.invalidate(["users"]) == 3
        mock_store.invalidate.assert_awaited_once_with(("users",))

    @pytest.mark.asyncio
    async def test_invalidate_without_tags_is_noop(self, gateway, mock_store):
        assert await gateway.invalidate([]) == 0
        mock_store.invalidate.assert_not_called()

    @pytest.mark.asyncio
    async def test_invalidate_failure_raises_write_error(self, gateway, mock_store):
        mock_store.invalidate = AsyncMock(side_effect=ConnectionError("down"))

        with pytest.raises(CacheWriteError) as exc_info:
            await gateway.invalidate(["users"])

        assert exc_info.value.key is None
        assert exc_info.value.tags == ("users",)


def test_cache_manager_satisfies_store_protocol(cache_manager):
    """Test that the bundled store implements CacheStore."""
    assert isinstance(cache_manager, CacheStore)
