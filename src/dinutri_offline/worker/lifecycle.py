"""Install and activate steps: populate the shell, purge stale partitions."""

import asyncio
from typing import TYPE_CHECKING

import httpx
import structlog

from dinutri_offline.config import CacheConfig
from dinutri_offline.core.exceptions import CacheStorageError, DiNutriOfflineError
from dinutri_offline.models.exchange import FetchRequest
from dinutri_offline.services.cache import CacheStorage
from dinutri_offline.services.network import NetworkFetcher
from dinutri_offline.worker.clients import Clients

if TYPE_CHECKING:
    from dinutri_offline.worker.service_worker import ServiceWorker

logger = structlog.get_logger(__name__)


class CacheLifecycle:
    """Creation, population and garbage collection of versioned partitions."""

    def __init__(
        self,
        config: CacheConfig,
        storage: CacheStorage,
        fetcher: NetworkFetcher,
        clients: Clients,
    ) -> None:
        self.config = config
        self.storage = storage
        self.fetcher = fetcher
        self.clients = clients

    def shell_requests(self) -> list[FetchRequest]:
        origin = httpx.URL(self.config.origin)
        return [
            FetchRequest.get(str(origin.join(asset))) for asset in self.config.shell_assets
        ]

    async def on_install(self) -> None:
        """Precache the app shell into the static partition.

        A failure is logged and swallowed so the worker can still finish
        installing and later activate.
        """
        cache_name = self.config.static_cache_name
        logger.info("worker_installing", cache_name=cache_name)
        try:
            partition = await self.storage.open(cache_name)
            await partition.add_all(self.shell_requests(), self.fetcher)
        except DiNutriOfflineError as e:
            logger.error(
                "static_assets_cache_failed",
                cache_name=cache_name,
                error_code=e.code,
                error=e.message,
            )
            return
        logger.info(
            "static_assets_cached",
            cache_name=cache_name,
            count=len(self.config.shell_assets),
        )

    async def on_activate(self, worker: "ServiceWorker") -> list[str]:
        """Delete stale partitions, then take control of every open page.

        Returns:
            Names of the partitions that were deleted
        """
        logger.info("worker_activating", cache_name=self.config.static_cache_name)
        try:
            names = await self.storage.keys()
        except CacheStorageError as e:
            logger.error("cache_listing_failed", error=e.message)
            names = []

        stale = [name for name in names if self.config.is_stale(name)]
        results = await asyncio.gather(*(self._delete(name) for name in stale))
        deleted = [name for name, ok in zip(stale, results, strict=True) if ok]
        logger.info("cache_cleanup_completed", deleted=deleted)

        await self.clients.claim(worker)
        return deleted

    async def _delete(self, cache_name: str) -> bool:
        try:
            await self.storage.delete(cache_name)
        except CacheStorageError as e:
            logger.warning("cache_delete_failed", cache_name=cache_name, error=e.message)
            return False
        logger.info("cache_partition_deleted", cache_name=cache_name)
        return True
