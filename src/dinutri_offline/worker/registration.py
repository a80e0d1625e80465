"""WorkerRegistration - the host runtime that drives worker versions.

A registration holds up to three workers:

    installing - currently running its install step
    waiting    - installed, not yet in control (a new deployment)
    active     - serving fetches and controlling pages

The first worker ever registered activates immediately. Later versions wait
until they are asked to skip waiting, at which point the previous active
worker becomes redundant.
"""

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from dinutri_offline.config import CacheConfig
from dinutri_offline.core.exceptions import WorkerStateError
from dinutri_offline.models.exchange import FetchRequest, OwnedResponse
from dinutri_offline.models.worker import WorkerMessage, WorkerState
from dinutri_offline.services.cache import CacheStorage
from dinutri_offline.services.network import NetworkFetcher
from dinutri_offline.worker.clients import Client, Clients
from dinutri_offline.worker.service_worker import ServiceWorker

logger = structlog.get_logger(__name__)

UpdateFoundListener = Callable[[ServiceWorker], Awaitable[None] | None]


class WorkerRegistration:
    """Registration of the offline cache manager for one origin.

    Usage:
        ```python
        registration = WorkerRegistration(storage, fetcher)
        await registration.register(CacheConfig.from_settings(settings))
        response = await registration.fetch(FetchRequest.get(url))
        ```
    """

    def __init__(
        self,
        storage: CacheStorage,
        fetcher: NetworkFetcher,
        clients: Clients | None = None,
    ) -> None:
        self.storage = storage
        self.fetcher = fetcher
        self.clients = clients or Clients()
        self.installing: ServiceWorker | None = None
        self.waiting: ServiceWorker | None = None
        self.active: ServiceWorker | None = None
        self._update_listeners: list[UpdateFoundListener] = []
        self._update_lock = asyncio.Lock()

    def on_update_found(self, listener: UpdateFoundListener) -> None:
        self._update_listeners.append(listener)

    def remove_update_listener(self, listener: UpdateFoundListener) -> None:
        if listener in self._update_listeners:
            self._update_listeners.remove(listener)

    async def register(self, config: CacheConfig) -> ServiceWorker:
        """Install a new worker version.

        Returns:
            The new worker, either active (first registration) or waiting
        """
        async with self._update_lock:
            worker = ServiceWorker(
                config, self.storage, self.fetcher, self.clients, registration=self
            )
            self.installing = worker
            logger.info("worker_update_found", version=worker.version)
            for listener in list(self._update_listeners):
                result = listener(worker)
                if inspect.isawaitable(result):
                    await result

            try:
                await worker.install()
            finally:
                self.installing = None

            if self.waiting is not None:
                await self.waiting.set_state(WorkerState.REDUNDANT)
            self.waiting = worker
            await worker.set_state(WorkerState.INSTALLED)

            if self.active is None:
                await self._activate(worker)
            return worker

    async def activate_waiting(self, worker: ServiceWorker | None = None) -> ServiceWorker:
        """Promote the waiting worker (or ``worker``, which must be waiting).

        Raises:
            WorkerStateError: If there is no matching waiting worker
        """
        worker = worker or self.waiting
        if worker is not None and worker is self.active:
            return worker
        if worker is None or worker is not self.waiting:
            raise WorkerStateError(
                state=worker.state.value if worker else None,
                version=worker.version if worker else None,
                message="No waiting worker to activate",
            )
        await self._activate(worker)
        return worker

    async def _activate(self, worker: ServiceWorker) -> None:
        previous = self.active
        self.waiting = None
        self.active = worker
        if previous is not None:
            await previous.set_state(WorkerState.REDUNDANT)
        await worker.activate()

    async def post_message_to_waiting(self, message: WorkerMessage | dict[str, Any]) -> None:
        if self.waiting is None:
            raise WorkerStateError(message="No waiting worker")
        await self.waiting.post_message(message)

    async def fetch(self, request: FetchRequest) -> OwnedResponse:
        """Serve a request through the active worker, or the network."""
        if self.active is not None:
            response = await self.active.handle_fetch(request)
            if response is not None:
                return response
        return await self.fetcher.fetch(request)

    def connect(self, url: str, client_id: str | None = None) -> Client:
        """Open a page in scope; it is controlled by the current active worker."""
        client = Client(url, registration=self, client_id=client_id)
        client.controller = self.active
        return self.clients.add(client)

    async def drain(self) -> None:
        for worker in (self.active, self.waiting):
            if worker is not None:
                await worker.drain()

    def snapshot(self) -> dict[str, Any]:
        def describe(worker: ServiceWorker | None) -> dict[str, Any] | None:
            if worker is None:
                return None
            return {
                "version": worker.version,
                "state": worker.state.value,
                "caches": sorted(worker.config.current_cache_names),
            }

        return {
            "installing": describe(self.installing),
            "waiting": describe(self.waiting),
            "active": describe(self.active),
            "clients": len(self.clients),
        }
