"""Interface every cache backend used by cached repositories must provide."""

from typing import Any, Iterable, Protocol, runtime_checkable


class _Missing:
    """Marker for an absent cache entry."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISSING"


# Returned by CacheStore.get() when nothing is stored under the key.
# None, 0, False and empty containers are valid cached values.
MISSING: Any = _Missing()


@runtime_checkable
class CacheStore(Protocol):
    """Tag-aware async key/value store.

    Entries written with a tag set live in that tag set's key space: a
    lookup with tags only sees entries written with the same tags, and a
    lookup without tags only sees untagged entries.
    """

    async def get(self, key: str, tags: Iterable[str] = ()) -> Any:
        """Return the stored value or MISSING."""
        ...

    async def put(
        self,
        key: str,
        value: Any,
        ttl_seconds: int,
        tags: Iterable[str] = (),
    ) -> None:
        """Store value under key for ttl_seconds."""
        ...

    async def invalidate(self, tags: Iterable[str]) -> int:
        """Remove every entry carrying any of the tags. Returns the count."""
        ...
