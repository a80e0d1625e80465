"""Fetch interceptor - per-request caching strategy selection.

Routing policy (first match wins):
    1. non-GET or non-web scheme -> not intercepted
    2. path under the API prefix  -> network-first, fallback to cache
    3. page navigation            -> network-first, fallback to page or root
    4. everything else            -> cache-first, store exact 200s

Cache writes are fire-and-forget: they run as event extensions and never
delay the response. Every stored response is a clone; the original goes back
to the requester unread.

Requests carrying credentials (cookie, authorization) read and write entries
scoped to those credentials; the anonymous entry is the shared fallback.
An upstream 304 is never stored since it has no body to replay.
"""

from enum import Enum
from http import HTTPStatus

import structlog

from dinutri_offline.config import CacheConfig
from dinutri_offline.core.exceptions import CacheStorageError, NetworkError
from dinutri_offline.models.exchange import FetchRequest, OwnedResponse
from dinutri_offline.services.cache import CacheStorage, CacheTarget
from dinutri_offline.services.network import NetworkFetcher
from dinutri_offline.worker.events import FetchEvent

logger = structlog.get_logger(__name__)

ROOT_DOCUMENT = "/"


class FetchStrategy(str, Enum):
    """How an intercepted request is answered."""

    PASSTHROUGH = "passthrough"
    NETWORK_FIRST = "network_first"
    NAVIGATION = "navigation"
    CACHE_FIRST = "cache_first"


class FetchInterceptor:
    """Chooses and runs a caching strategy for every intercepted request."""

    def __init__(
        self,
        config: CacheConfig,
        storage: CacheStorage,
        fetcher: NetworkFetcher,
    ) -> None:
        self.config = config
        self.storage = storage
        self.fetcher = fetcher

    def route(self, request: FetchRequest) -> FetchStrategy:
        if request.method != "GET" or not request.is_web_scheme:
            return FetchStrategy.PASSTHROUGH
        if request.path.startswith(self.config.api_prefix):
            return FetchStrategy.NETWORK_FIRST
        if request.is_navigation:
            return FetchStrategy.NAVIGATION
        return FetchStrategy.CACHE_FIRST

    def handle(self, event: FetchEvent) -> FetchStrategy:
        strategy = self.route(event.request)
        if strategy == FetchStrategy.NETWORK_FIRST:
            event.respond_with(self.network_first(event))
        elif strategy == FetchStrategy.NAVIGATION:
            event.respond_with(self.navigation(event))
        elif strategy == FetchStrategy.CACHE_FIRST:
            event.respond_with(self.cache_first(event))
        return strategy

    # -------------------------------------------------------------------------
    # Strategies
    # -------------------------------------------------------------------------

    async def network_first(self, event: FetchEvent) -> OwnedResponse:
        """API calls: live response when online, last cached copy offline."""
        request = event.request
        scope = self._scope(request)
        try:
            response = await self.fetcher.fetch(request)
        except NetworkError:
            cached = await self._match(request, scope)
            if cached is None:
                logger.info("api_offline_cache_miss", url=request.url)
                raise
            logger.info("api_served_from_cache", url=request.url)
            return cached

        event.wait_until(
            self._store(
                self.config.dynamic_cache_name, request, response.clone(), scope
            )
        )
        return response

    async def navigation(self, event: FetchEvent) -> OwnedResponse:
        """Page loads: live page, else cached page, else cached root document."""
        request = event.request
        scope = self._scope(request)
        try:
            response = await self.fetcher.fetch(request)
        except NetworkError:
            cached = await self._match(request.url, scope)
            if cached is None:
                cached = await self._match(ROOT_DOCUMENT, scope)
            if cached is None:
                logger.info("navigation_offline_cache_miss", url=request.url)
                raise
            logger.info("navigation_served_from_cache", url=request.url)
            return cached

        event.wait_until(
            self._store(
                self.config.static_cache_name, request.url, response.clone(), scope
            )
        )
        return response

    async def cache_first(self, event: FetchEvent) -> OwnedResponse:
        """Static assets: cached copy if any, else network (exact 200s stored)."""
        request = event.request
        scope = self._scope(request)
        cached = await self._match(request, scope)
        if cached is not None:
            return cached

        response = await self.fetcher.fetch(request)
        if response.status == HTTPStatus.OK:
            event.wait_until(
                self._store(
                    self.config.dynamic_cache_name, request, response.clone(), scope
                )
            )
        return response

    # -------------------------------------------------------------------------
    # Cache helpers
    # -------------------------------------------------------------------------

    def _scope(self, request: FetchRequest) -> str | None:
        return request.credential_scope(self.config.credential_headers)

    async def _match(
        self, target: CacheTarget, scope: str | None = None
    ) -> OwnedResponse | None:
        """Entry stored for this user, else the anonymous entry."""
        try:
            if scope is not None:
                cached = await self.storage.match(target, scope)
                if cached is not None:
                    return cached
            return await self.storage.match(target)
        except CacheStorageError as e:
            logger.warning("cache_match_failed", error=e.message)
            return None

    async def _store(
        self,
        cache_name: str,
        target: CacheTarget,
        response: OwnedResponse,
        scope: str | None = None,
    ) -> None:
        if response.status == HTTPStatus.NOT_MODIFIED:
            logger.debug("cache_write_skipped", cache_name=cache_name, status=304)
            return
        try:
            partition = await self.storage.open(cache_name)
            await partition.put(target, response, scope)
        except CacheStorageError as e:
            logger.warning("cache_write_failed", cache_name=cache_name, error=e.message)
