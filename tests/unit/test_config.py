"""Tests for Settings and CacheConfig."""

from datetime import UTC, datetime

from dinutri_offline.config import (
    DEFAULT_SHELL_ASSETS,
    CacheBackend,
    CacheConfig,
    Settings,
    generate_cache_version,
)

# =============================================================================
# Settings Tests
# =============================================================================


class TestSettings:
    """Tests for settings defaults and validation."""

    def test_cache_defaults(self) -> None:
        settings = Settings()
        assert settings.cache_namespace == "dinutri"
        assert settings.api_prefix == "/api/"
        assert settings.cache_backend == CacheBackend.MEMORY
        assert settings.shell_assets == DEFAULT_SHELL_ASSETS

    def test_api_prefix_made_absolute(self) -> None:
        settings = Settings(api_prefix="api/")
        assert settings.api_prefix == "/api/"

    def test_json_logs_in_production(self) -> None:
        settings = Settings(app_env="production")  # type: ignore[arg-type]
        assert settings.use_json_logs is True


# =============================================================================
# CacheConfig Tests
# =============================================================================


class TestCacheConfig:
    """Tests for version-qualified partition naming."""

    def test_partition_names(self) -> None:
        config = CacheConfig(namespace="dinutri", version="v2")
        assert config.static_cache_name == "dinutri-v2-static"
        assert config.dynamic_cache_name == "dinutri-v2-dynamic"
        assert config.current_cache_names == {"dinutri-v2-static", "dinutri-v2-dynamic"}

    def test_stale_detection(self) -> None:
        config = CacheConfig(namespace="dinutri", version="v2")
        assert config.is_stale("dinutri-v1-static") is True
        assert config.is_stale("dinutri-v1-dynamic") is True
        assert config.is_stale("dinutri-v2-static") is False
        # Partitions outside the namespace are never touched
        assert config.is_stale("other-app-v1-static") is False

    def test_from_settings(self, test_settings: Settings) -> None:
        config = CacheConfig.from_settings(test_settings)
        assert config.version == "v1"
        assert config.shell_assets == ("/", "/manifest.json")
        assert config.origin == "http://origin.test"
        assert config.credential_headers == ("authorization", "cookie")

    def test_from_settings_with_version_override(self, test_settings: Settings) -> None:
        config = CacheConfig.from_settings(test_settings, version="v9")
        assert config.static_cache_name == "dinutri-v9-static"

    def test_with_version(self, cache_config: CacheConfig) -> None:
        updated = cache_config.with_version("v3")
        assert updated.version == "v3"
        assert cache_config.version == "v1"


class TestCacheVersion:
    """Tests for version token generation."""

    def test_token_from_timestamp(self) -> None:
        now = datetime(2024, 1, 1, tzinfo=UTC)
        assert generate_cache_version(now) == f"v{int(now.timestamp() * 1000)}"

    def test_later_builds_sort_after(self) -> None:
        earlier = generate_cache_version(datetime(2024, 1, 1, tzinfo=UTC))
        later = generate_cache_version(datetime(2024, 6, 1, tzinfo=UTC))
        assert int(later[1:]) > int(earlier[1:])

    def test_default_uses_current_time(self) -> None:
        token = generate_cache_version()
        assert token.startswith("v")
        assert token[1:].isdigit()
