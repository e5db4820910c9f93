"""Transparent caching for repositories."""

from repocache.cache.manager import CacheManager, get_cache_manager, reset_cache_manager
from repocache.cache.store import MISSING, CacheStore
from repocache.errors import (
    CacheReadError,
    CacheStoreError,
    CacheWriteError,
    MethodNotFoundError,
    RepositoryCacheError,
    RepositoryNotConfiguredError,
)
from repocache.repository import (
    CachedRepository,
    CachePolicy,
    RepositoryCacheConfig,
    clear_cache_hit_status,
    get_cache_hit_status,
)

__version__ = "0.1.0"

__all__ = [
    "CachedRepository",
    "CachePolicy",
    "RepositoryCacheConfig",
    "CacheManager",
    "CacheStore",
    "MISSING",
    "get_cache_manager",
    "reset_cache_manager",
    "get_cache_hit_status",
    "clear_cache_hit_status",
    "RepositoryCacheError",
    "MethodNotFoundError",
    "RepositoryNotConfiguredError",
    "CacheStoreError",
    "CacheReadError",
    "CacheWriteError",
]
