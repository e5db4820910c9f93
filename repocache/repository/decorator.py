"""Cache decorator base class for repositories.

Subclass CachedRepository, declare the repository specific settings as
class attributes and every repository method becomes cached without
writing any caching code:

    class CachedUserRepository(CachedRepository[UserRepository]):
        repository_class = UserRepository
        key_prefix = "users"
        excludes = ("insert", "delete")
        tag_cleaners = ("insert", "delete")
        tags = ("users",)

    users = CachedUserRepository()
    await users.find(3)   # repository call, result stored
    await users.find(3)   # served from the cache
    await users.insert()  # never cached, flushes the "users" tag

Forwarded calls are always awaited, whether the repository method is a
coroutine function or a plain one.

Tag cleaners flush the whole tag group: entries written by any other
repository or client sharing one of the tags are invalidated too.

ttl and enabled can be changed with set_ttl() and set_enabled(). These
setters are not synchronised with calls already in flight. A call uses
the policy as it was when the call started.
"""

import functools
import inspect
import time
from contextvars import ContextVar
from typing import Any, Callable, ClassVar, Generic, Optional, TypeVar

import structlog

from repocache.cache.gateway import CacheGateway
from repocache.cache.keys import make_cache_key
from repocache.cache.store import MISSING, CacheStore
from repocache.errors import (
    CacheReadError,
    CacheWriteError,
    MethodNotFoundError,
    RepositoryNotConfiguredError,
)
from repocache.logging import log_cache_operation

from .policy import CachePolicy, RepositoryCacheConfig, TtlValue

logger = structlog.get_logger()

R = TypeVar("R")

# None = no cached call yet, True = cache hit, False = cache miss
_cache_hit_status: ContextVar[Optional[bool]] = ContextVar(
    "repository_cache_hit_status", default=None
)


def get_cache_hit_status() -> Optional[bool]:
    """Get the cache hit status of the last cached call in this context.

    Returns:
        True if it was a cache hit,
        False if it was a cache miss,
        None if no cached call was made.
    """
    return _cache_hit_status.get()


def clear_cache_hit_status() -> None:
    """Clear the cache hit status in the current context."""
    _cache_hit_status.set(None)


class CachedRepository(Generic[R]):
    """Caching proxy around a repository. Meant to be subclassed.

    Any attribute the subclass doesn't define itself is looked up on the
    wrapped repository. Methods come back as async callables that go
    through invoke(). Define a method with the same name on the subclass
    to handle that operation yourself.

    Class attributes:
        repository_class: Instantiated when no repository is passed in
        key_prefix: Beginning of every cache key (default: repository class name)
        excludes: Methods that are never cached (inserts, setters, ...)
        tag_cleaners: Methods that flush the tags after they succeed
        tags: Cache tags for this repository's entries
    """

    repository_class: ClassVar[Optional[Callable[[], Any]]] = None
    key_prefix: ClassVar[Optional[str]] = None
    excludes: ClassVar[tuple[str, ...]] = ()
    tag_cleaners: ClassVar[tuple[str, ...]] = ()
    tags: ClassVar[tuple[str, ...]] = ()

    def __init__(
        self,
        repository: Optional[R] = None,
        *,
        config: Optional[RepositoryCacheConfig] = None,
        store: Optional[CacheStore] = None,
    ):
        """Initialize the cached repository.

        Args:
            repository: Repository object (built from repository_class if None)
            config: Cache configuration (read from settings if None)
            store: Cache store (the shared CacheManager if None)
        """
        self._operations: dict[str, Callable[..., Any]] = {}
        self._repository = self._init_repository(repository)

        if config is None:
            config = RepositoryCacheConfig.from_settings()
        self._policy = CachePolicy.load(
            config,
            key_prefix=self.key_prefix or type(self._repository).__name__,
            excludes=self.excludes,
            tag_cleaners=self.tag_cleaners,
            tags=self.tags,
        )

        if store is None:
            from repocache.cache.manager import get_cache_manager

            store = get_cache_manager()
        self._gateway = CacheGateway(store)

    def _init_repository(self, repository: Optional[R]) -> R:
        if repository is not None:
            return repository
        if self.repository_class is None:
            raise RepositoryNotConfiguredError(
                f"{type(self).__name__} got no repository and declares no repository_class"
            )
        return self.repository_class()

    @property
    def repository(self) -> R:
        """The wrapped repository."""
        return self._repository

    @property
    def policy(self) -> CachePolicy:
        """Current caching policy."""
        return self._policy

    def set_ttl(self, ttl: TtlValue) -> None:
        """Set cache TTL.

        Args:
            ttl: Time to live in minutes, or a timedelta
        """
        self._policy = self._policy.with_ttl(ttl)

    def set_enabled(self, enabled: bool) -> None:
        """Enable or disable caching.

        Args:
            enabled: True to cache, False to always call the repository
        """
        self._policy = self._policy.with_enabled(enabled)

    def __getattr__(self, name: str) -> Any:
        # Only reached for names this object doesn't define itself
        if name.startswith("__") or "_repository" not in self.__dict__:
            raise AttributeError(name)

        target = self._resolve(name)
        if not callable(target):
            return target

        @functools.wraps(target)
        async def forward(*args: Any, **kwargs: Any) -> Any:
            return await self.invoke(name, *args, **kwargs)

        return forward

    def __dir__(self) -> list[str]:
        public = (n for n in dir(self._repository) if not n.startswith("_"))
        return sorted(set(super().__dir__()).union(public))

    def __repr__(self) -> str:
        return f"<{type(self).__name__} wrapping {self._repository!r}>"

    async def invoke(self, method: str, *args: Any, **kwargs: Any) -> Any:
        """Call a repository method through the cache.

        Args:
            method: Name of the repository method
            *args: Positional arguments for the method and the cache key
            **kwargs: Keyword arguments for the method and the cache key

        Returns:
            Whatever the repository method returns

        Raises:
            MethodNotFoundError: If the repository has no such method
        """
        policy = self._policy
        self._log("Starting call", method=method, args=args, kwargs=kwargs)

        operation = self._resolve_operation(method)

        if self._is_method_cacheable(method, policy):
            key = make_cache_key(policy.key_prefix, method, args, kwargs)
            self._log("Cache key", key=key)

            result = await self._get_cache(key, policy)
            if result is MISSING:
                _cache_hit_status.set(False)
                self._log("Cache empty, asking from repository", method=method)
                result = await self._call_method(operation, args, kwargs)
                await self._put_cache(key, result, policy)
            else:
                _cache_hit_status.set(True)
        else:
            result = await self._call_method(operation, args, kwargs)

        if self._does_method_clear_tags(method, policy):
            await self.clear_cache_tags()

        return result

    async def clear_cache_tags(self) -> int:
        """Flush every cache entry under this repository's tags.

        Returns:
            Number of entries removed (0 when the repository is untagged
            or the store failed)
        """
        policy = self._policy
        if not policy.tagged:
            return 0

        self._log("Clearing the tag cache", tags=list(policy.tags))
        start = time.perf_counter()
        try:
            count = await self._gateway.invalidate(policy.tags)
        except CacheWriteError as e:
            self._log(
                "Cache tag invalidation failed",
                level="warning",
                tags=list(e.tags),
                error=repr(e.__cause__),
            )
            return 0

        if policy.debug:
            log_cache_operation("clear", policy.key_prefix, _elapsed_ms(start))
        return count

    def _resolve(self, method: str) -> Any:
        if method in self._operations:
            return self._operations[method]
        if method.startswith("_"):
            raise MethodNotFoundError(method, self._repository)
        try:
            target = getattr(self._repository, method)
        except AttributeError:
            raise MethodNotFoundError(method, self._repository) from None
        if callable(target):
            self._operations[method] = target
        return target

    def _resolve_operation(self, method: str) -> Callable[..., Any]:
        target = self._resolve(method)
        if not callable(target):
            raise MethodNotFoundError(method, self._repository)
        return target

    def _is_method_cacheable(self, method: str, policy: CachePolicy) -> bool:
        if not policy.enabled:
            self._log("Caching disabled", method=method)
            return False
        if not policy.is_cacheable(method):
            self._log("Method excluded from cache", method=method)
            return False
        self._log("Method cacheable", method=method)
        return True

    def _does_method_clear_tags(self, method: str, policy: CachePolicy) -> bool:
        if policy.clears_tags(method):
            self._log("Method clears tags", method=method)
            return True
        return False

    async def _call_method(
        self, operation: Callable[..., Any], args: tuple, kwargs: dict
    ) -> Any:
        result = operation(*args, **kwargs)
        if inspect.isawaitable(result):
            result = await result
        return result

    async def _get_cache(self, key: str, policy: CachePolicy) -> Any:
        self._log(
            "Trying to get cache with tags" if policy.tagged else "Trying to get cache without tags"
        )
        start = time.perf_counter()
        try:
            value = await self._gateway.get(key, policy.tags)
        except CacheReadError as e:
            self._log(
                "Cache read failed, treating as miss",
                level="warning",
                key=key,
                error=repr(e.__cause__),
            )
            return MISSING

        if policy.debug:
            operation = "miss" if value is MISSING else "hit"
            log_cache_operation(operation, policy.key_prefix, _elapsed_ms(start))
        return value

    async def _put_cache(self, key: str, result: Any, policy: CachePolicy) -> bool:
        if not result and not policy.cache_empty_results:
            self._log("Empty result, not caching", key=key)
            return False

        self._log(
            "Saving to cache with tags" if policy.tagged else "Saving to cache without tags"
        )
        start = time.perf_counter()
        try:
            await self._gateway.put(key, result, policy.ttl, policy.tags)
        except CacheWriteError as e:
            self._log(
                "Cache write failed",
                level="warning",
                key=key,
                error=repr(e.__cause__),
            )
            return False

        if policy.debug:
            log_cache_operation("set", policy.key_prefix, _elapsed_ms(start))
        return True

    def _log(self, event: str, level: str = "debug", **context: Any) -> None:
        if self._policy.debug:
            getattr(logger, level)(event, repository=self._policy.key_prefix, **context)


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000
