"""Pytest configuration and fixtures for DiNutri Offline tests.

This module provides reusable fixtures for:
- Settings overrides
- A fake upstream origin behind httpx.MockTransport
- Cache storage, fetcher and worker registration
- Async test client running the gateway lifespan
"""

from collections.abc import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from dinutri_offline.config import CacheConfig, Settings
from dinutri_offline.main import create_app
from dinutri_offline.services.cache import MemoryCacheStorage
from dinutri_offline.services.network import NetworkFetcher
from dinutri_offline.worker.registration import WorkerRegistration
from tests.mocks.origin import FakeOrigin, dinutri_origin

ORIGIN_URL = "http://origin.test"


# =============================================================================
# Settings Fixtures
# =============================================================================


@pytest.fixture
def test_settings() -> Settings:
    """Create test-specific settings."""
    return Settings(
        app_env="development",  # type: ignore[arg-type]
        debug=True,
        log_level="DEBUG",  # type: ignore[arg-type]
        log_format="console",  # type: ignore[arg-type]
        upstream_url=ORIGIN_URL,
        upstream_timeout=5.0,
        cache_namespace="dinutri",
        cache_version="v1",
        shell_assets=["/", "/manifest.json"],
        cache_backend="memory",  # type: ignore[arg-type]
    )


@pytest.fixture
def cache_config(test_settings: Settings) -> CacheConfig:
    return CacheConfig.from_settings(test_settings)


# =============================================================================
# Upstream / Storage Fixtures
# =============================================================================


@pytest.fixture
def origin() -> FakeOrigin:
    """Fake DiNutri origin serving the shell, an API route and an asset."""
    return dinutri_origin()


@pytest.fixture
async def fetcher(
    test_settings: Settings, origin: FakeOrigin
) -> AsyncGenerator[NetworkFetcher, None]:
    fetcher = NetworkFetcher(test_settings, transport=origin.transport())
    yield fetcher
    await fetcher.close()


@pytest.fixture
def storage() -> MemoryCacheStorage:
    return MemoryCacheStorage()


@pytest.fixture
def registration(
    storage: MemoryCacheStorage, fetcher: NetworkFetcher
) -> WorkerRegistration:
    return WorkerRegistration(storage, fetcher)


@pytest.fixture
def mock_redis() -> MagicMock:
    """Create a mock async Redis client."""
    redis = MagicMock()
    redis.zscore = AsyncMock(return_value=None)
    redis.incr = AsyncMock(return_value=1)
    redis.zadd = AsyncMock(return_value=1)
    redis.zrange = AsyncMock(return_value=[])
    redis.zrem = AsyncMock(return_value=1)
    redis.delete = AsyncMock(return_value=1)
    redis.hget = AsyncMock(return_value=None)
    redis.hset = AsyncMock(return_value=1)
    redis.hdel = AsyncMock(return_value=1)
    redis.hkeys = AsyncMock(return_value=[])
    redis.ping = AsyncMock(return_value=True)
    redis.aclose = AsyncMock(return_value=None)
    return redis


# =============================================================================
# Application Fixtures
# =============================================================================


@pytest.fixture
def app(test_settings: Settings, origin: FakeOrigin) -> FastAPI:
    """Create a gateway app whose upstream is the fake origin."""
    return create_app(settings=test_settings, upstream_transport=origin.transport())


@pytest.fixture
async def async_client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Create an async HTTP client with the lifespan running.

    Usage:
        async def test_endpoint(async_client: AsyncClient):
            response = await async_client.get("/health/live")
            assert response.status_code == 200
    """
    async with app.router.lifespan_context(app):
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
        ) as client:
            yield client
