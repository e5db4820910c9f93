"""Per-repository caching policy."""

from datetime import timedelta
from typing import Iterable, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from repocache.config.settings import Settings

# The cached repository's own API. Never cached, whatever a subclass declares.
MANAGEMENT_METHODS = frozenset({
    "invoke",
    "set_ttl",
    "set_enabled",
    "clear_cache_tags",
    "policy",
    "repository",
    "repository_class",
})

TtlValue = Union[int, float, timedelta]


def coerce_ttl(value: TtlValue) -> timedelta:
    """Convert minutes (or a timedelta) to a positive timedelta."""
    ttl = value if isinstance(value, timedelta) else timedelta(minutes=value)
    if ttl <= timedelta(0):
        raise ValueError(f"Cache TTL must be positive, got {value!r}")
    return ttl


class RepositoryCacheConfig(BaseModel):
    """Configuration source read once when a cached repository is built."""

    ttl: int = Field(default=60, gt=0, description="TTL in minutes")
    enabled: bool = True
    use_tags: bool = True
    debug: bool = False
    cache_empty_results: bool = True

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "RepositoryCacheConfig":
        """Build the config from application settings.

        Args:
            settings: Settings to read (the process settings if None)
        """
        if settings is None:
            from repocache.config.settings import settings

        return cls(
            ttl=settings.repository_cache_ttl,
            enabled=settings.repository_cache_enabled,
            use_tags=settings.repository_cache_use_tags,
            debug=settings.debug,
            cache_empty_results=settings.repository_cache_empty_results,
        )


class CachePolicy(BaseModel):
    """Caching policy of one cached repository instance.

    Only ttl and enabled change after load(), through with_ttl() and
    with_enabled(). The method sets and tags are fixed for the lifetime
    of the instance.
    """

    model_config = ConfigDict(frozen=True)

    key_prefix: str
    ttl: timedelta = timedelta(minutes=60)
    enabled: bool = True
    excluded_methods: frozenset[str] = MANAGEMENT_METHODS
    tag_clearing_methods: frozenset[str] = frozenset()
    tags: tuple[str, ...] = ()
    debug: bool = False
    cache_empty_results: bool = True

    @field_validator("ttl", mode="before")
    @classmethod
    def _validate_ttl(cls, value: TtlValue) -> timedelta:
        return coerce_ttl(value)

    @field_validator("excluded_methods")
    @classmethod
    def _always_exclude_management(cls, value: frozenset[str]) -> frozenset[str]:
        return value | MANAGEMENT_METHODS

    @classmethod
    def load(
        cls,
        config: RepositoryCacheConfig,
        *,
        key_prefix: str,
        excludes: Iterable[str] = (),
        tag_cleaners: Iterable[str] = (),
        tags: Iterable[str] = (),
    ) -> "CachePolicy":
        """Assemble the policy from the config and the repository's declarations.

        Tags and tag cleaners are dropped entirely when the config disables
        tag support.
        """
        if config.use_tags:
            tag_names = tuple(dict.fromkeys(tags))
            cleaners = frozenset(tag_cleaners)
        else:
            tag_names = ()
            cleaners = frozenset()

        return cls(
            key_prefix=key_prefix,
            ttl=config.ttl,
            enabled=config.enabled,
            excluded_methods=MANAGEMENT_METHODS | frozenset(excludes),
            tag_clearing_methods=cleaners,
            tags=tag_names,
            debug=config.debug,
            cache_empty_results=config.cache_empty_results,
        )

    @property
    def tagged(self) -> bool:
        return bool(self.tags)

    def is_cacheable(self, method: str) -> bool:
        return self.enabled and method not in self.excluded_methods

    def clears_tags(self, method: str) -> bool:
        return method in self.tag_clearing_methods

    def with_ttl(self, ttl: TtlValue) -> "CachePolicy":
        return self.model_copy(update={"ttl": coerce_ttl(ttl)})

    def with_enabled(self, enabled: bool) -> "CachePolicy":
        return self.model_copy(update={"enabled": bool(enabled)})
