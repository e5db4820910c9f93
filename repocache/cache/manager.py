"""Tag-aware cache manager with memory and SQLite layers."""

import copy
import json
from collections import OrderedDict
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Iterable, Optional

import aiosqlite
import structlog
from pydantic import BaseModel

from .store import MISSING

logger = structlog.get_logger()

UNTAGGED_SCOPE = ""


class CacheStats(BaseModel):
    """Cache statistics."""

    hits: int = 0
    misses: int = 0
    memory_items: int = 0

    @property
    def hit_rate(self) -> float:
        """Calculate hit rate percentage."""
        total = self.hits + self.misses
        return (self.hits / total * 100) if total > 0 else 0.0


class CacheEntry(BaseModel):
    """A single cache entry."""

    key: str
    scope: str
    tags: tuple[str, ...] = ()
    value: Any  # private copy of the stored object
    persisted: bool = True
    created_at: datetime
    expires_at: datetime
    hit_count: int = 0


def make_scope(tags: Iterable[str]) -> str:
    """Key space name for a tag set. Order and duplicates don't matter."""
    unique = sorted(set(tags))
    if not unique:
        return UNTAGGED_SCOPE
    return json.dumps(unique, separators=(",", ":"))


def _same_value(restored: Any, original: Any) -> bool:
    """Equal value and equal types all the way down."""
    if type(restored) is not type(original):
        return False
    if isinstance(original, dict):
        return restored.keys() == original.keys() and all(
            _same_value(restored[k], original[k]) for k in original
        )
    if isinstance(original, list):
        return len(restored) == len(original) and all(
            _same_value(r, o) for r, o in zip(restored, original)
        )
    return restored == original


class CacheManager:
    """Two-tier cache: LRU memory + SQLite persistence, with tag scopes.

    Every entry lives in the scope of the tag set it was written with.
    invalidate() drops all entries carrying any of the given tags, no
    matter which client wrote them.
    """

    def __init__(self, db_path: Path, max_memory_items: int = 1000):
        """Initialize cache manager.

        Args:
            db_path: Path to SQLite database
            max_memory_items: Maximum items in memory cache (LRU eviction)
        """
        self._memory: OrderedDict[tuple[str, str], CacheEntry] = OrderedDict()
        self._max_memory = max_memory_items
        self._db_path = Path(db_path)
        self._initialized = False
        self._stats = CacheStats()

    async def _ensure_initialized(self) -> None:
        """Ensure database is initialized."""
        if self._initialized:
            return

        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        async with aiosqlite.connect(self._db_path) as db:
            await db.execute("""
                CREATE TABLE IF NOT EXISTS cache_entries (
                    scope TEXT NOT NULL,
                    key TEXT NOT NULL,
                    value TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    expires_at TEXT NOT NULL,
                    hit_count INTEGER DEFAULT 0,
                    PRIMARY KEY (scope, key)
                )
            """)
            await db.execute("""
                CREATE TABLE IF NOT EXISTS cache_scope_tags (
                    scope TEXT NOT NULL,
                    tag TEXT NOT NULL,
                    PRIMARY KEY (scope, tag)
                )
            """)
            await db.execute(
                "CREATE INDEX IF NOT EXISTS idx_scope_tag ON cache_scope_tags(tag)"
            )
            await db.execute(
                "CREATE INDEX IF NOT EXISTS idx_expires ON cache_entries(expires_at)"
            )
            await db.commit()

        self._initialized = True
        logger.debug("Cache database initialized", path=str(self._db_path))

    async def get(self, key: str, tags: Iterable[str] = ()) -> Any:
        """Get value from cache.

        Checks memory first, then SQLite.

        Args:
            key: Cache key
            tags: Tag set the entry was written with (empty for untagged)

        Returns:
            Cached value, or MISSING if not found/expired
        """
        await self._ensure_initialized()
        scope = make_scope(tags)
        slot = (scope, key)

        if slot in self._memory:
            entry = self._memory[slot]
            if datetime.now() < entry.expires_at:
                self._memory.move_to_end(slot)
                entry.hit_count += 1
                self._stats.hits += 1
                logger.debug("Cache hit (memory)", key=key[:50], scope=scope)
                return copy.deepcopy(entry.value)
            else:
                del self._memory[slot]

        async with aiosqlite.connect(self._db_path) as db:
            cursor = await db.execute(
                "SELECT value, expires_at, hit_count FROM cache_entries "
                "WHERE scope = ? AND key = ?",
                (scope, key),
            )
            row = await cursor.fetchone()

            if row:
                value, expires_at_str, hit_count = row
                expires_at = datetime.fromisoformat(expires_at_str)

                if datetime.now() < expires_at:
                    await db.execute(
                        "UPDATE cache_entries SET hit_count = ? WHERE scope = ? AND key = ?",
                        (hit_count + 1, scope, key),
                    )
                    await db.commit()
                    self._stats.hits += 1
                    logger.debug("Cache hit (db)", key=key[:50], scope=scope)
                    return self._deserialize(value)
                else:
                    await db.execute(
                        "DELETE FROM cache_entries WHERE scope = ? AND key = ?",
                        (scope, key),
                    )
                    await db.commit()

        self._stats.misses += 1
        logger.debug("Cache miss", key=key[:50], scope=scope)
        return MISSING

    async def put(
        self,
        key: str,
        value: Any,
        ttl_seconds: int,
        tags: Iterable[str] = (),
    ) -> None:
        """Store value in cache.

        The memory layer keeps a copy of the object itself. SQLite only
        receives values that come back from JSON unchanged; anything else
        (tuples, int dict keys, models, arbitrary objects) is memory-only
        and is lost on LRU eviction or restart.

        Args:
            key: Cache key
            value: Value to cache
            ttl_seconds: Time to live in seconds
            tags: Tags the entry belongs to
        """
        await self._ensure_initialized()

        tag_list = sorted(set(tags))
        scope = make_scope(tag_list)
        now = datetime.now()
        expires_at = now + timedelta(seconds=ttl_seconds)
        serialized = self._serialize_exact(value)

        entry = CacheEntry(
            key=key,
            scope=scope,
            tags=tuple(tag_list),
            value=copy.deepcopy(value),
            persisted=serialized is not None,
            created_at=now,
            expires_at=expires_at,
        )

        slot = (scope, key)
        self._memory[slot] = entry
        self._memory.move_to_end(slot)

        while len(self._memory) > self._max_memory:
            self._memory.popitem(last=False)

        async with aiosqlite.connect(self._db_path) as db:
            if serialized is None:
                # Drop any older row so eviction can't resurrect a stale value
                await db.execute(
                    "DELETE FROM cache_entries WHERE scope = ? AND key = ?",
                    (scope, key),
                )
            else:
                await db.execute(
                    """
                    INSERT OR REPLACE INTO cache_entries
                    (scope, key, value, created_at, expires_at, hit_count)
                    VALUES (?, ?, ?, ?, ?, 0)
                    """,
                    (scope, key, serialized, now.isoformat(), expires_at.isoformat()),
                )
                if tag_list:
                    await db.executemany(
                        "INSERT OR IGNORE INTO cache_scope_tags (scope, tag) VALUES (?, ?)",
                        [(scope, tag) for tag in tag_list],
                    )
            await db.commit()

        logger.debug(
            "Cache set",
            key=key[:50],
            ttl=ttl_seconds,
            tags=tag_list,
            persisted=entry.persisted,
        )

    async def invalidate(self, tags: Iterable[str]) -> int:
        """Invalidate every entry carrying any of the tags.

        Args:
            tags: Tag names to flush

        Returns:
            Number of entries invalidated
        """
        tag_set = set(tags)
        if not tag_set:
            return 0

        await self._ensure_initialized()

        slots_to_remove = [
            slot for slot, entry in self._memory.items() if tag_set.intersection(entry.tags)
        ]
        for slot in slots_to_remove:
            del self._memory[slot]

        placeholders = ",".join("?" for _ in tag_set)
        async with aiosqlite.connect(self._db_path) as db:
            cursor = await db.execute(
                f"SELECT DISTINCT scope FROM cache_scope_tags WHERE tag IN ({placeholders})",
                tuple(tag_set),
            )
            scopes = [row[0] for row in await cursor.fetchall()]

            deleted = 0
            if scopes:
                scope_placeholders = ",".join("?" for _ in scopes)
                cursor = await db.execute(
                    f"DELETE FROM cache_entries WHERE scope IN ({scope_placeholders})",
                    scopes,
                )
                deleted = cursor.rowcount
                await db.execute(
                    f"DELETE FROM cache_scope_tags WHERE scope IN ({scope_placeholders})",
                    scopes,
                )
            await db.commit()

        # Memory-only entries (already gone from SQLite) still count once.
        count = max(deleted, len(slots_to_remove))
        logger.debug("Cache tags invalidated", tags=sorted(tag_set), count=count)
        return count

    async def clear(self, tag: Optional[str] = None) -> int:
        """Clear cache entries.

        Args:
            tag: If specified, only clear entries carrying this tag

        Returns:
            Number of entries cleared
        """
        if tag:
            count = await self.invalidate([tag])
            logger.info("Cache cleared", tag=tag, count=count)
            return count

        await self._ensure_initialized()

        count = len(self._memory)
        self._memory.clear()

        async with aiosqlite.connect(self._db_path) as db:
            cursor = await db.execute("DELETE FROM cache_entries")
            await db.execute("DELETE FROM cache_scope_tags")
            await db.commit()
            count = max(count, cursor.rowcount)

        logger.info("Cache cleared", tag=tag, count=count)
        return count

    async def cleanup_expired(self) -> int:
        """Remove expired entries from cache.

        Returns:
            Number of entries removed
        """
        await self._ensure_initialized()

        now = datetime.now()

        expired_slots = [slot for slot, v in self._memory.items() if v.expires_at < now]
        for slot in expired_slots:
            del self._memory[slot]

        async with aiosqlite.connect(self._db_path) as db:
            cursor = await db.execute(
                "DELETE FROM cache_entries WHERE expires_at < ?", (now.isoformat(),)
            )
            await db.commit()
            return max(cursor.rowcount, len(expired_slots))

    def get_stats(self) -> CacheStats:
        """Get cache statistics.

        Returns:
            CacheStats with hit/miss counts and item counts
        """
        self._stats.memory_items = len(self._memory)
        return self._stats.model_copy()

    async def get_db_item_count(self) -> int:
        """Get count of items in SQLite database."""
        await self._ensure_initialized()
        async with aiosqlite.connect(self._db_path) as db:
            cursor = await db.execute("SELECT COUNT(*) FROM cache_entries")
            row = await cursor.fetchone()
            return row[0] if row else 0

    def _serialize(self, value: Any) -> str:
        """Serialize value to JSON string."""
        return json.dumps(value, default=self._json_default)

    def _serialize_exact(self, value: Any) -> Optional[str]:
        """Serialize value, or None if JSON would not give it back unchanged."""
        try:
            serialized = self._serialize(value)
            exact = _same_value(self._deserialize(serialized), value)
        except (TypeError, ValueError):
            return None
        return serialized if exact else None

    def _deserialize(self, value: str) -> Any:
        """Deserialize JSON string to value."""
        return json.loads(value, object_hook=self._json_object_hook)

    def _json_default(self, obj: Any) -> Any:
        """Default JSON serializer for complex types."""
        if isinstance(obj, datetime):
            return {"__datetime__": obj.isoformat()}
        raise TypeError(f"{type(obj).__name__} is not JSON serializable")

    def _json_object_hook(self, obj: dict) -> Any:
        if set(obj) == {"__datetime__"}:
            return datetime.fromisoformat(obj["__datetime__"])
        return obj


# Global cache manager instance
_cache_manager: Optional[CacheManager] = None


def get_cache_manager() -> CacheManager:
    """Get the global cache manager instance.

    Returns:
        CacheManager instance (creates if needed)
    """
    global _cache_manager
    if _cache_manager is None:
        from repocache.config.settings import settings

        _cache_manager = CacheManager(
            db_path=settings.cache_path,
            max_memory_items=settings.cache_memory_max_items,
        )
    return _cache_manager


def reset_cache_manager() -> None:
    """Reset the global cache manager (for testing)."""
    global _cache_manager
    _cache_manager = None
