"""Cache module: key generation, store interface, gateway and the bundled store."""

from .gateway import CacheGateway, normalize_tags
from .keys import flatten_arguments, make_cache_key
from .manager import CacheManager, CacheStats, get_cache_manager, reset_cache_manager
from .store import MISSING, CacheStore

__all__ = [
    "CacheGateway",
    "CacheManager",
    "CacheStats",
    "CacheStore",
    "MISSING",
    "flatten_arguments",
    "get_cache_manager",
    "make_cache_key",
    "normalize_tags",
    "reset_cache_manager",
]
