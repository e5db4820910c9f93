"""Cached repository proxy and its policy."""

from .decorator import CachedRepository, clear_cache_hit_status, get_cache_hit_status
from .policy import MANAGEMENT_METHODS, CachePolicy, RepositoryCacheConfig

__all__ = [
    "CachedRepository",
    "CachePolicy",
    "RepositoryCacheConfig",
    "MANAGEMENT_METHODS",
    "get_cache_hit_status",
    "clear_cache_hit_status",
]
