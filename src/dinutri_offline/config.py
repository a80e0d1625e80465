"""Application configuration using Pydantic Settings.

This module provides centralized configuration management with environment
variable validation, type coercion, and default values.

It also defines ``CacheConfig``, the explicit configuration object handed to
the cache store, the fetch interceptor and the update coordinator. One
instance exists per deployed worker version.
"""

import time
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Application environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class LogLevel(str, Enum):
    """Log level options."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log format options."""

    JSON = "json"
    CONSOLE = "console"


class CacheBackend(str, Enum):
    """Cache storage backend options."""

    MEMORY = "memory"
    REDIS = "redis"


DEFAULT_SHELL_ASSETS = [
    "/",
    "/manifest.json",
    "/icon-192x192.png",
    "/icon-512x512.png",
    "/logo_dinutri.png",
]


class Settings(BaseSettings):
    """Application settings with environment variable validation.

    All settings can be overridden via environment variables.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Application
    # ========================================
    app_env: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Application environment",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )
    app_name: str = Field(
        default="DiNutri Offline",
        description="Application name",
    )
    app_version: str = Field(
        default="0.1.0",
        description="Application version",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Logging level",
    )
    log_format: LogFormat = Field(
        default=LogFormat.CONSOLE,
        description="Log output format (json for production, console for dev)",
    )

    # ========================================
    # Server
    # ========================================
    host: str = Field(
        default="0.0.0.0",
        description="Server host",
    )
    port: int = Field(
        default=8000,
        ge=1,
        le=65535,
        description="Server port",
    )

    # ========================================
    # Upstream origin
    # ========================================
    upstream_url: str = Field(
        default="http://localhost:5000",
        description="Origin server the gateway fetches from",
    )
    upstream_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Upstream request timeout in seconds",
    )

    # ========================================
    # Cache
    # ========================================
    cache_namespace: str = Field(
        default="dinutri",
        min_length=1,
        description="Prefix shared by every cache partition of this app",
    )
    cache_version: str = Field(
        default="v1",
        min_length=1,
        description="Build token stamped into partition names",
    )
    shell_assets: list[str] = Field(
        default_factory=lambda: list(DEFAULT_SHELL_ASSETS),
        description="App shell URLs precached on install",
    )
    api_prefix: str = Field(
        default="/api/",
        description="Path prefix served network-first",
    )
    cache_backend: CacheBackend = Field(
        default=CacheBackend.MEMORY,
        description="Cache storage backend (memory or redis)",
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL",
    )
    redis_key_prefix: str = Field(
        default="offline-cache:",
        description="Prefix for every Redis key written by the cache store",
    )
    credential_headers: list[str] = Field(
        default_factory=lambda: ["authorization", "cookie"],
        description="Request headers that identify a user; cached entries are scoped by them",
    )

    # ========================================
    # Derived Properties
    # ========================================
    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == Environment.DEVELOPMENT

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env == Environment.PRODUCTION

    @property
    def use_json_logs(self) -> bool:
        """Check if JSON logging should be used."""
        return self.log_format == LogFormat.JSON or self.is_production

    @field_validator("api_prefix")
    @classmethod
    def validate_api_prefix(cls, v: str) -> str:
        """Ensure the API prefix is an absolute path."""
        if not v.startswith("/"):
            v = f"/{v}"
        return v


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings: Application settings instance
    """
    return Settings()


# =============================================================================
# Cache configuration
# =============================================================================


def generate_cache_version(now: datetime | None = None) -> str:
    """Build a fresh cache version token from the build timestamp.

    Tokens are ``v`` followed by epoch milliseconds, so later builds always
    sort after earlier ones.

    Args:
        now: Build time (defaults to the current time)

    Returns:
        Version token (e.g., "v1718000000000")
    """
    millis = int(now.timestamp() * 1000) if now else time.time_ns() // 1_000_000
    return f"v{millis}"


@dataclass(frozen=True)
class CacheConfig:
    """Per-version cache configuration.

    Attributes:
        namespace: Prefix shared by all partitions of the app
        version: Build token of this worker version
        shell_assets: Origin-relative URLs precached into the static partition
        api_prefix: Path prefix routed network-first
        origin: Origin the worker serves, used to resolve shell asset URLs
        credential_headers: Request headers whose values scope cached entries
            to one user
    """

    namespace: str
    version: str
    shell_assets: tuple[str, ...] = field(default_factory=tuple)
    api_prefix: str = "/api/"
    origin: str = "http://localhost"
    credential_headers: tuple[str, ...] = ("authorization", "cookie")

    @classmethod
    def from_settings(
        cls, settings: Settings, version: str | None = None
    ) -> "CacheConfig":
        """Create the configuration for one deployment."""
        return cls(
            namespace=settings.cache_namespace,
            version=version or settings.cache_version,
            shell_assets=tuple(settings.shell_assets),
            api_prefix=settings.api_prefix,
            origin=settings.upstream_url.rstrip("/"),
            credential_headers=tuple(h.lower() for h in settings.credential_headers),
        )

    def with_version(self, version: str) -> "CacheConfig":
        return replace(self, version=version)

    @property
    def namespace_prefix(self) -> str:
        return f"{self.namespace}-"

    @property
    def static_cache_name(self) -> str:
        return f"{self.namespace}-{self.version}-static"

    @property
    def dynamic_cache_name(self) -> str:
        return f"{self.namespace}-{self.version}-dynamic"

    @property
    def current_cache_names(self) -> frozenset[str]:
        return frozenset({self.static_cache_name, self.dynamic_cache_name})

    def is_current(self, cache_name: str) -> bool:
        return cache_name in self.current_cache_names

    def is_stale(self, cache_name: str) -> bool:
        """Partitions of this app that belong to another version."""
        return cache_name.startswith(self.namespace_prefix) and not self.is_current(
            cache_name
        )
