"""Tests for install / activate steps and partition garbage collection."""

import pytest

from dinutri_offline.config import CacheConfig
from dinutri_offline.models.exchange import FetchRequest
from dinutri_offline.models.worker import WorkerState
from dinutri_offline.services.cache import MemoryCacheStorage
from dinutri_offline.services.network import NetworkFetcher
from dinutri_offline.worker.clients import CONTROLLER_CHANGE, Client, Clients
from dinutri_offline.worker.lifecycle import CacheLifecycle
from dinutri_offline.worker.registration import WorkerRegistration
from dinutri_offline.worker.service_worker import ServiceWorker
from tests.mocks.origin import FakeOrigin


@pytest.fixture
def clients() -> Clients:
    return Clients()


@pytest.fixture
def lifecycle(
    cache_config: CacheConfig,
    storage: MemoryCacheStorage,
    fetcher: NetworkFetcher,
    clients: Clients,
) -> CacheLifecycle:
    return CacheLifecycle(cache_config, storage, fetcher, clients)


# =============================================================================
# Install Tests
# =============================================================================


class TestInstall:
    """Tests for the shell precache."""

    def test_shell_requests_resolved_against_origin(
        self, lifecycle: CacheLifecycle
    ) -> None:
        urls = [r.url for r in lifecycle.shell_requests()]
        assert urls == ["http://origin.test/", "http://origin.test/manifest.json"]

    @pytest.mark.asyncio
    async def test_install_caches_shell(
        self,
        lifecycle: CacheLifecycle,
        storage: MemoryCacheStorage,
        cache_config: CacheConfig,
    ) -> None:
        await lifecycle.on_install()

        static = await storage.open(cache_config.static_cache_name)
        assert sorted(await static.keys()) == ["/", "/manifest.json"]

    @pytest.mark.asyncio
    async def test_offline_install_is_not_fatal(
        self,
        lifecycle: CacheLifecycle,
        storage: MemoryCacheStorage,
        cache_config: CacheConfig,
        origin: FakeOrigin,
    ) -> None:
        origin.offline = True

        await lifecycle.on_install()

        static = await storage.open(cache_config.static_cache_name)
        assert await static.keys() == []

    @pytest.mark.asyncio
    async def test_missing_asset_stores_nothing(
        self,
        storage: MemoryCacheStorage,
        fetcher: NetworkFetcher,
        clients: Clients,
        cache_config: CacheConfig,
    ) -> None:
        config = CacheConfig(
            namespace=cache_config.namespace,
            version=cache_config.version,
            shell_assets=("/", "/icon-192x192.png"),
            origin=cache_config.origin,
        )
        lifecycle = CacheLifecycle(config, storage, fetcher, clients)

        await lifecycle.on_install()

        static = await storage.open(config.static_cache_name)
        assert await static.keys() == []

    @pytest.mark.asyncio
    async def test_worker_activates_after_failed_precache(
        self, registration: WorkerRegistration, cache_config: CacheConfig, origin: FakeOrigin
    ) -> None:
        origin.offline = True

        worker = await registration.register(cache_config)

        assert worker.state == WorkerState.ACTIVATED
        assert registration.active is worker


# =============================================================================
# Activate Tests
# =============================================================================


class TestActivate:
    """Tests for stale partition cleanup and client claiming."""

    @pytest.fixture
    def worker(
        self,
        cache_config: CacheConfig,
        storage: MemoryCacheStorage,
        fetcher: NetworkFetcher,
        clients: Clients,
    ) -> ServiceWorker:
        return ServiceWorker(cache_config, storage, fetcher, clients)

    @pytest.mark.asyncio
    async def test_deletes_only_stale_namespace_partitions(
        self,
        lifecycle: CacheLifecycle,
        storage: MemoryCacheStorage,
        worker: ServiceWorker,
    ) -> None:
        for name in (
            "dinutri-v0-static",
            "dinutri-v0-dynamic",
            "dinutri-v1-static",
            "dinutri-v1-dynamic",
            "analytics-cache",
        ):
            await storage.open(name)

        deleted = await lifecycle.on_activate(worker)

        assert sorted(deleted) == ["dinutri-v0-dynamic", "dinutri-v0-static"]
        assert await storage.keys() == [
            "dinutri-v1-static",
            "dinutri-v1-dynamic",
            "analytics-cache",
        ]

    @pytest.mark.asyncio
    async def test_claims_clients_after_cleanup(
        self,
        lifecycle: CacheLifecycle,
        storage: MemoryCacheStorage,
        clients: Clients,
        worker: ServiceWorker,
    ) -> None:
        await storage.open("dinutri-v0-static")
        page = clients.add(Client("http://origin.test/"))
        seen: list[list[str]] = []

        async def on_change() -> None:
            seen.append(await storage.keys())

        page.add_event_listener(CONTROLLER_CHANGE, on_change)

        await lifecycle.on_activate(worker)

        assert page.controller is worker
        # Stale partitions were already gone when the page changed controller
        assert seen == [[]]


# =============================================================================
# Version Rollover Tests
# =============================================================================


class TestVersionRollover:
    """End-to-end: deploy v1, then v2, then activate v2."""

    @pytest.mark.asyncio
    async def test_v1_to_v2(
        self,
        registration: WorkerRegistration,
        storage: MemoryCacheStorage,
        cache_config: CacheConfig,
    ) -> None:
        v1 = await registration.register(cache_config)
        await registration.fetch(FetchRequest.get("http://origin.test/api/patients"))
        await registration.drain()
        assert await storage.keys() == ["dinutri-v1-static", "dinutri-v1-dynamic"]

        v2 = await registration.register(cache_config.with_version("v2"))
        assert registration.waiting is v2
        assert await storage.keys() == [
            "dinutri-v1-static",
            "dinutri-v1-dynamic",
            "dinutri-v2-static",
        ]

        await registration.activate_waiting()

        assert registration.active is v2
        assert v1.state == WorkerState.REDUNDANT
        assert await storage.keys() == ["dinutri-v2-static"]

    @pytest.mark.asyncio
    async def test_new_version_serves_from_its_own_partitions(
        self,
        registration: WorkerRegistration,
        storage: MemoryCacheStorage,
        cache_config: CacheConfig,
        origin: FakeOrigin,
    ) -> None:
        await registration.register(cache_config)
        await registration.register(cache_config.with_version("v2"))
        await registration.activate_waiting()
        origin.offline = True

        response = await registration.fetch(
            FetchRequest.get("http://origin.test/manifest.json")
        )

        assert response.status == 200
        assert response.json() == {"name": "DiNutri", "short_name": "DiNutri"}
        assert await storage.keys() == ["dinutri-v2-static"]
