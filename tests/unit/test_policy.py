"""Tests for the caching policy and its configuration source."""

from datetime import timedelta

import pytest
from pydantic import ValidationError

from repocache.config.settings import Settings
from repocache.repository.policy import (
    MANAGEMENT_METHODS,
    CachePolicy,
    RepositoryCacheConfig,
    coerce_ttl,
)


class TestCachePolicyLoad:
    """Tests for CachePolicy.load."""

    def test_load_from_config(self):
        config = RepositoryCacheConfig(ttl=15, enabled=False, debug=True)

        policy = CachePolicy.load(
            config,
            key_prefix="users",
            excludes=["insert"],
            tag_cleaners=["insert"],
            tags=["users", "accounts", "users"],
        )

        assert policy.key_prefix == "users"
        assert policy.ttl == timedelta(minutes=15)
        assert policy.enabled is False
        assert policy.debug is True
        assert policy.excluded_methods == MANAGEMENT_METHODS | {"insert"}
        assert policy.tag_clearing_methods == {"insert"}
        assert policy.tags == ("users", "accounts")
        assert policy.tagged

    def test_use_tags_false_forces_empty_tags(self):
        """Test that disabled tag support drops tags and cleaners."""
        config = RepositoryCacheConfig(use_tags=False)

        policy = CachePolicy.load(
            config, key_prefix="users", tag_cleaners=["insert"], tags=["users"]
        )

        assert policy.tags == ()
        assert policy.tag_clearing_methods == frozenset()
        assert not policy.tagged
        assert not policy.clears_tags("insert")

    def test_management_methods_cannot_be_dropped(self):
        """Test that excluded_methods always contains the proxy's own API."""
        policy = CachePolicy(key_prefix="users", excluded_methods=frozenset({"insert"}))

        assert MANAGEMENT_METHODS <= policy.excluded_methods
        assert "insert" in policy.excluded_methods

    def test_is_cacheable(self):
        policy = CachePolicy.load(RepositoryCacheConfig(), key_prefix="u", excludes=["insert"])

        assert policy.is_cacheable("find")
        assert not policy.is_cacheable("insert")
        assert not policy.is_cacheable("set_ttl")
        assert not policy.with_enabled(False).is_cacheable("find")


class TestCachePolicyMutation:
    """Only ttl and enabled change after load."""

    def test_with_ttl_minutes(self):
        policy = CachePolicy(key_prefix="u")

        assert policy.with_ttl(5).ttl == timedelta(minutes=5)
        assert policy.ttl == timedelta(minutes=60)

    def test_with_ttl_timedelta(self):
        policy = CachePolicy(key_prefix="u").with_ttl(timedelta(seconds=30))

        assert policy.ttl == timedelta(seconds=30)

    def test_with_enabled(self):
        policy = CachePolicy(key_prefix="u", tags=("a",))
        disabled = policy.with_enabled(False)

        assert disabled.enabled is False
        assert disabled.tags == ("a",)

    def test_frozen(self):
        """Test that the policy can't be changed in place."""
        policy = CachePolicy(key_prefix="u")

        with pytest.raises(ValidationError):
            policy.tags = ("x",)

    @pytest.mark.parametrize("value", [0, -1, timedelta(0)])
    def test_non_positive_ttl_rejected(self, value):
        with pytest.raises(ValueError):
            coerce_ttl(value)


class TestRepositoryCacheConfig:
    """Tests for the configuration source."""

    def test_defaults(self):
        config = RepositoryCacheConfig()

        assert config.ttl == 60
        assert config.enabled is True
        assert config.use_tags is True
        assert config.debug is False
        assert config.cache_empty_results is True

    def test_ttl_must_be_positive(self):
        with pytest.raises(ValidationError):
            RepositoryCacheConfig(ttl=0)

    def test_from_settings(self, tmp_path):
        """Test mapping application settings to the cache config."""
        settings = Settings(
            repository_cache_ttl=30,
            repository_cache_enabled=False,
            repository_cache_use_tags=False,
            repository_cache_empty_results=False,
            debug=True,
            cache_path=tmp_path / "cache.db",
        )

        config = RepositoryCacheConfig.from_settings(settings)

        assert config == RepositoryCacheConfig(
            ttl=30, enabled=False, use_tags=False, debug=True, cache_empty_results=False
        )

    def test_settings_from_environment(self, monkeypatch):
        """Test that settings read environment variables."""
        monkeypatch.setenv("REPOSITORY_CACHE_TTL", "12")
        monkeypatch.setenv("REPOSITORY_CACHE_ENABLED", "false")
        monkeypatch.setenv("DEBUG", "true")

        settings = Settings(_env_file=None)

        assert settings.repository_cache_ttl == 12
        assert settings.repository_cache_enabled is False
        assert settings.debug is True

    def test_settings_only_declare_cache_fields(self):
        """Test that ENVIRONMENT is left to the logging config."""
        assert "environment" not in Settings.model_fields
