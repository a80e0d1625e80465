"""Page contexts (clients) served by a worker registration."""

import inspect
import uuid
from collections import defaultdict
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

import structlog

from dinutri_offline.models.exchange import FetchRequest, OwnedResponse, RequestMode
from dinutri_offline.models.worker import WorkerMessage

if TYPE_CHECKING:
    from dinutri_offline.worker.registration import WorkerRegistration
    from dinutri_offline.worker.service_worker import ServiceWorker

logger = structlog.get_logger(__name__)

Listener = Callable[..., Awaitable[None] | None]

CONTROLLER_CHANGE = "controllerchange"
MESSAGE = "message"


class Client:
    """One open page.

    Attributes:
        id: Client identifier
        url: Page URL
        controller: Worker currently serving this page, if any
        messages: Messages received from workers, oldest first
        reload_count: Number of full reloads performed
    """

    def __init__(
        self,
        url: str,
        registration: "WorkerRegistration | None" = None,
        client_id: str | None = None,
    ) -> None:
        self.id = client_id or uuid.uuid4().hex
        self.url = url
        self.registration = registration
        self.controller: ServiceWorker | None = None
        self.messages: list[WorkerMessage] = []
        self.reload_count = 0
        self.last_response: OwnedResponse | None = None
        self._listeners: dict[str, list[tuple[Listener, bool]]] = defaultdict(list)

    def __repr__(self) -> str:
        return f"<Client(id='{self.id}', url='{self.url}')>"

    def add_event_listener(
        self, event_type: str, listener: Listener, once: bool = False
    ) -> None:
        self._listeners[event_type].append((listener, once))

    def remove_event_listener(self, event_type: str, listener: Listener) -> None:
        self._listeners[event_type] = [
            entry for entry in self._listeners[event_type] if entry[0] is not listener
        ]

    def listener_count(self, event_type: str) -> int:
        return len(self._listeners.get(event_type, []))

    async def _emit(self, event_type: str, *args: Any) -> None:
        entries = list(self._listeners.get(event_type, []))
        # One-shot listeners are dropped before running so they cannot re-fire
        self._listeners[event_type] = [e for e in entries if not e[1]]
        for listener, _ in entries:
            result = listener(*args)
            if inspect.isawaitable(result):
                await result

    async def post_message(self, message: WorkerMessage) -> None:
        self.messages.append(message)
        await self._emit(MESSAGE, message)

    async def set_controller(self, worker: "ServiceWorker | None") -> bool:
        """Switch controller; fires controller-changed only on a real change."""
        if worker is self.controller:
            return False
        self.controller = worker
        logger.debug(
            "client_controller_changed",
            client_id=self.id,
            version=worker.version if worker else None,
        )
        await self._emit(CONTROLLER_CHANGE)
        return True

    async def reload(self) -> OwnedResponse | None:
        """Reload the page through the registration's active worker."""
        self.reload_count += 1
        logger.info("client_reloading", client_id=self.id, url=self.url)
        if self.registration is None:
            return None
        if self.registration.active is not None:
            self.controller = self.registration.active
        request = FetchRequest.get(self.url, mode=RequestMode.NAVIGATE)
        self.last_response = await self.registration.fetch(request)
        return self.last_response


class Clients:
    """All pages within one registration's scope."""

    def __init__(self) -> None:
        self._clients: dict[str, Client] = {}

    def __len__(self) -> int:
        return len(self._clients)

    def add(self, client: Client) -> Client:
        self._clients[client.id] = client
        return client

    def remove(self, client_id: str) -> Client | None:
        return self._clients.pop(client_id, None)

    def get(self, client_id: str) -> Client | None:
        return self._clients.get(client_id)

    async def match_all(
        self,
        controller: "ServiceWorker | None" = None,
        include_uncontrolled: bool = False,
    ) -> list[Client]:
        """Clients controlled by ``controller`` (or all with include_uncontrolled)."""
        if include_uncontrolled:
            return list(self._clients.values())
        return [c for c in self._clients.values() if c.controller is controller]

    async def claim(self, worker: "ServiceWorker") -> int:
        """Make ``worker`` the controller of every client. Returns changes."""
        changed = 0
        for client in list(self._clients.values()):
            if await client.set_controller(worker):
                changed += 1
        logger.info("clients_claimed", version=worker.version, changed=changed)
        return changed
