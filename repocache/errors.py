"""Exceptions raised by the repository cache layer."""

from typing import Any, Iterable, Optional


class RepositoryCacheError(Exception):
    """Base class for repository cache errors."""


class MethodNotFoundError(RepositoryCacheError, AttributeError):
    """The wrapped repository has no operation with the requested name.

    Subclasses AttributeError so hasattr() and getattr(obj, name, default)
    keep working on cached repositories.
    """

    def __init__(self, method: str, repository: Any = None):
        self.method = method
        self.repository = repository
        owner = type(repository).__name__ if repository is not None else "repository"
        super().__init__(f"Method '{method}' does not exist in {owner}")


class RepositoryNotConfiguredError(RepositoryCacheError):
    """No repository instance was given and no repository_class is declared."""


class CacheStoreError(RepositoryCacheError):
    """The cache store failed while serving a request."""


class CacheReadError(CacheStoreError):
    """Cache lookup failed. Callers treat it as a miss."""

    def __init__(self, key: str, tags: Iterable[str] = ()):
        self.key = key
        self.tags = tuple(tags)
        super().__init__(f"Cache read failed for key '{key}'")


class CacheWriteError(CacheStoreError):
    """Cache write or tag invalidation failed."""

    def __init__(self, tags: Iterable[str] = (), key: Optional[str] = None):
        self.key = key
        self.tags = tuple(tags)
        if key is not None:
            message = f"Cache write failed for key '{key}'"
        else:
            message = f"Cache invalidation failed for tags {list(self.tags)}"
        super().__init__(message)
