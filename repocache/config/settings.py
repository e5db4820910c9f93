"""Configuration settings for repository caching."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Repository cache
    repository_cache_ttl: int = Field(
        default=60,
        gt=0,
        description="TTL for cached repository results in minutes",
    )
    repository_cache_enabled: bool = Field(
        default=True, description="Enable repository caching"
    )
    repository_cache_use_tags: bool = Field(
        default=True,
        description="Scope entries by tags and let tag cleaners flush them",
    )
    repository_cache_empty_results: bool = Field(
        default=True,
        description="Cache empty/falsy results (None, 0, [], False)",
    )

    # Cache store
    cache_path: Path = Field(
        default=Path("data/cache.db"), description="SQLite cache path"
    )
    cache_memory_max_items: int = Field(
        default=1000, description="Max items in memory cache"
    )

    # Application
    debug: bool = Field(
        default=False,
        description="Emit trace logs for every cache decision",
    )

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


settings = Settings()
