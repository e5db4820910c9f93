"""Gateway between cached repositories and the cache store."""

import math
from datetime import timedelta
from typing import Any, Iterable

from repocache.errors import CacheReadError, CacheWriteError

from .store import CacheStore


def normalize_tags(tags: Iterable[str] | None) -> tuple[str, ...]:
    """Deduplicate tags, keeping their declared order."""
    if not tags:
        return ()
    return tuple(dict.fromkeys(tags))


class CacheGateway:
    """Reads, writes and tag invalidation against a CacheStore.

    Store exceptions are re-raised as CacheReadError / CacheWriteError with
    the original exception chained, so callers only deal with one taxonomy.
    """

    def __init__(self, store: CacheStore):
        self.store = store

    async def get(self, key: str, tags: Iterable[str] = ()) -> Any:
        """Look up key in the tag scope (global key space when untagged).

        Returns:
            The cached value or MISSING
        """
        scope = normalize_tags(tags)
        try:
            return await self.store.get(key, scope)
        except Exception as e:
            raise CacheReadError(key, scope) from e

    async def put(
        self,
        key: str,
        value: Any,
        ttl: timedelta,
        tags: Iterable[str] = (),
    ) -> bool:
        """Store value under key for ttl, attached to tags when given.

        The ttl is rounded up to whole seconds, never below one.
        """
        scope = normalize_tags(tags)
        ttl_seconds = max(1, math.ceil(ttl.total_seconds()))
        try:
            await self.store.put(key, value, ttl_seconds, scope)
        except Exception as e:
            raise CacheWriteError(scope, key=key) from e
        return True

    async def invalidate(self, tags: Iterable[str]) -> int:
        """Flush every entry under any of the tags, not only our own keys.

        Returns:
            Number of entries removed (0 when no tags are given)
        """
        scope = normalize_tags(tags)
        if not scope:
            return 0
        try:
            return await self.store.invalidate(scope)
        except Exception as e:
            raise CacheWriteError(scope) from e

