"""ServiceWorker - one deployed version of the offline cache manager.

Each version is built from its own ``CacheConfig`` and wires named handlers
onto a typed event dispatcher:

    install  -> on_install   (precache the app shell)
    activate -> on_activate  (purge stale partitions, claim pages)
    fetch    -> on_fetch     (run the fetch interceptor)
    message  -> on_message   (SKIP_WAITING -> activate, broadcast SW_UPDATED)
    sync     -> on_sync      (acknowledge background-sync)

Lifecycle states are driven by the owning ``WorkerRegistration``.
"""

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import ValidationError

from dinutri_offline.config import CacheConfig
from dinutri_offline.core.exceptions import InvalidMessageError
from dinutri_offline.models.exchange import FetchRequest, OwnedResponse
from dinutri_offline.models.worker import MessageAction, WorkerMessage, WorkerState
from dinutri_offline.services.cache import CacheStorage
from dinutri_offline.services.network import NetworkFetcher
from dinutri_offline.worker.clients import Client, Clients
from dinutri_offline.worker.events import (
    ActivateEvent,
    EventDispatcher,
    ExtendableEvent,
    FetchEvent,
    InstallEvent,
    MessageEvent,
    SyncEvent,
)
from dinutri_offline.worker.interceptor import FetchInterceptor
from dinutri_offline.worker.lifecycle import CacheLifecycle

if TYPE_CHECKING:
    from dinutri_offline.worker.registration import WorkerRegistration

logger = structlog.get_logger(__name__)

BACKGROUND_SYNC_TAG = "background-sync"

StateListener = Callable[["ServiceWorker", WorkerState], Awaitable[None] | None]


class ServiceWorker:
    """A single worker version and its event handlers."""

    def __init__(
        self,
        config: CacheConfig,
        storage: CacheStorage,
        fetcher: NetworkFetcher,
        clients: Clients,
        registration: "WorkerRegistration | None" = None,
    ) -> None:
        self.config = config
        self.storage = storage
        self.fetcher = fetcher
        self.clients = clients
        self.registration = registration
        self.state = WorkerState.PARSED

        self.lifecycle = CacheLifecycle(config, storage, fetcher, clients)
        self.interceptor = FetchInterceptor(config, storage, fetcher)

        self.dispatcher = EventDispatcher()
        self.dispatcher.on(InstallEvent.type, self.on_install)
        self.dispatcher.on(ActivateEvent.type, self.on_activate)
        self.dispatcher.on(FetchEvent.type, self.on_fetch)
        self.dispatcher.on(MessageEvent.type, self.on_message)
        self.dispatcher.on(SyncEvent.type, self.on_sync)

        self._state_listeners: list[StateListener] = []
        self._background: set[asyncio.Task[None]] = set()

    def __repr__(self) -> str:
        return f"<ServiceWorker(version='{self.version}', state={self.state.value})>"

    @property
    def version(self) -> str:
        return self.config.version

    def on_state_change(self, listener: StateListener) -> None:
        self._state_listeners.append(listener)

    async def set_state(self, state: WorkerState) -> None:
        if state == self.state:
            return
        self.state = state
        logger.info("worker_state_changed", version=self.version, state=state.value)
        for listener in list(self._state_listeners):
            result = listener(self, state)
            if inspect.isawaitable(result):
                await result

    # -------------------------------------------------------------------------
    # Lifecycle (driven by the registration)
    # -------------------------------------------------------------------------

    async def install(self) -> None:
        """Run the install step. The registration marks the worker installed."""
        await self.set_state(WorkerState.INSTALLING)
        event = await self.dispatcher.dispatch(InstallEvent())
        try:
            await event.settled()
        except Exception:
            await self.set_state(WorkerState.REDUNDANT)
            raise

    async def activate(self) -> None:
        await self.set_state(WorkerState.ACTIVATING)
        event = await self.dispatcher.dispatch(ActivateEvent())
        try:
            await event.settled()
        except Exception as e:
            # Activation proceeds regardless, cleanup is best effort
            logger.error("worker_activate_failed", version=self.version, error=str(e))
        await self.set_state(WorkerState.ACTIVATED)

    async def skip_waiting(self) -> None:
        """Ask the registration to activate this worker now."""
        if self.registration is not None:
            await self.registration.activate_waiting(self)

    # -------------------------------------------------------------------------
    # Entry points
    # -------------------------------------------------------------------------

    async def post_message(
        self, message: WorkerMessage | dict[str, Any], source: Client | None = None
    ) -> None:
        """Deliver a message and wait until its handling settles.

        Raises:
            InvalidMessageError: If ``message`` does not match the protocol
        """
        if not isinstance(message, WorkerMessage):
            try:
                message = WorkerMessage.model_validate(message)
            except ValidationError as e:
                raise InvalidMessageError(
                    details={"errors": [err["msg"] for err in e.errors()]}
                ) from e

        event = await self.dispatcher.dispatch(MessageEvent(message, source=source))
        await event.settled()

    async def sync(self, tag: str) -> None:
        event = await self.dispatcher.dispatch(SyncEvent(tag))
        await event.settled()

    async def handle_fetch(self, request: FetchRequest) -> OwnedResponse | None:
        """Run the fetch handlers for ``request``.

        Returns:
            The response, or None when the request was not intercepted
        """
        event = FetchEvent(request)
        await self.dispatcher.dispatch(event)
        if not event.handled:
            return None

        response = await event.response()
        self._track(event)
        return response

    async def drain(self) -> None:
        """Wait for pending fire-and-forget work (cache writes)."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    def _track(self, event: ExtendableEvent) -> None:
        if not event.extension_count:
            return
        task = asyncio.create_task(self._settle(event))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _settle(self, event: ExtendableEvent) -> None:
        try:
            await event.settled()
        except Exception as e:
            logger.warning("event_extension_failed", event_type=event.type, error=str(e))

    # -------------------------------------------------------------------------
    # Event handlers
    # -------------------------------------------------------------------------

    async def on_install(self, event: InstallEvent) -> None:
        event.wait_until(self.lifecycle.on_install())

    async def on_activate(self, event: ActivateEvent) -> None:
        event.wait_until(self.lifecycle.on_activate(self))

    async def on_fetch(self, event: FetchEvent) -> None:
        strategy = self.interceptor.handle(event)
        logger.debug(
            "fetch_intercepted",
            url=event.request.url,
            method=event.request.method,
            strategy=strategy.value,
        )

    async def on_message(self, event: MessageEvent) -> None:
        logger.info("worker_message_received", action=event.data.action.value)
        if event.data.action == MessageAction.SKIP_WAITING:
            event.wait_until(self._skip_waiting_and_notify())

    async def on_sync(self, event: SyncEvent) -> None:
        if event.tag == BACKGROUND_SYNC_TAG:
            logger.info("background_sync_triggered", version=self.version)

    async def _skip_waiting_and_notify(self) -> None:
        await self.skip_waiting()
        clients = await self.clients.match_all(controller=self)
        for client in clients:
            await client.post_message(WorkerMessage.updated())
        logger.info("worker_update_broadcast", version=self.version, clients=len(clients))
