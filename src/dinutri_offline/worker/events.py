"""Typed worker events and the dispatch layer that runs their handlers.

Every event is extendable: handlers pass their asynchronous work to
``wait_until`` and the event is settled once all of that work has finished.
The worker is never torn down before its events settle.
"""

import asyncio
import inspect
from collections import defaultdict
from collections.abc import Awaitable, Callable
from typing import Any, ClassVar

import structlog

from dinutri_offline.core.exceptions import WorkerStateError
from dinutri_offline.models.exchange import FetchRequest, OwnedResponse
from dinutri_offline.models.worker import WorkerMessage

logger = structlog.get_logger(__name__)


class ExtendableEvent:
    """Base event whose lifetime can be extended with ``wait_until``."""

    type: ClassVar[str] = "event"

    def __init__(self) -> None:
        self._extensions: list[asyncio.Future[Any]] = []

    def wait_until(self, awaitable: Awaitable[Any]) -> asyncio.Future[Any]:
        """Keep the event alive until ``awaitable`` completes."""
        future = asyncio.ensure_future(awaitable)
        self._extensions.append(future)
        return future

    @property
    def extension_count(self) -> int:
        return len(self._extensions)

    async def settled(self) -> None:
        """Wait for every extension, including ones added while waiting.

        Raises:
            Exception: The first failure among the extensions
        """
        first_error: BaseException | None = None
        index = 0
        while index < len(self._extensions):
            future = self._extensions[index]
            index += 1
            try:
                await future
            except Exception as e:
                if first_error is None:
                    first_error = e
        if first_error is not None:
            raise first_error


class InstallEvent(ExtendableEvent):
    type = "install"


class ActivateEvent(ExtendableEvent):
    type = "activate"


class SyncEvent(ExtendableEvent):
    type = "sync"

    def __init__(self, tag: str) -> None:
        super().__init__()
        self.tag = tag


class MessageEvent(ExtendableEvent):
    type = "message"

    def __init__(self, data: WorkerMessage, source: Any = None) -> None:
        super().__init__()
        self.data = data
        self.source = source


class FetchEvent(ExtendableEvent):
    """An intercepted request.

    A handler that wants to answer calls ``respond_with``; if none does, the
    request proceeds to the network untouched.
    """

    type = "fetch"

    def __init__(self, request: FetchRequest) -> None:
        super().__init__()
        self.request = request
        self._response: asyncio.Future[OwnedResponse] | None = None

    @property
    def handled(self) -> bool:
        return self._response is not None

    def respond_with(self, response: Awaitable[OwnedResponse]) -> None:
        if self._response is not None:
            raise WorkerStateError(message="respond_with() already called")
        self._response = asyncio.ensure_future(response)

    async def response(self) -> OwnedResponse | None:
        if self._response is None:
            return None
        return await self._response


Handler = Callable[[Any], Awaitable[None] | None]


class EventDispatcher:
    """Named handlers per event type, run in registration order."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[tuple[str, Handler]]] = defaultdict(list)

    def on(self, event_type: str, handler: Handler, name: str | None = None) -> None:
        handler_name = name or getattr(handler, "__name__", repr(handler))
        self._handlers[event_type].append((handler_name, handler))

    def handler_names(self, event_type: str) -> list[str]:
        return [name for name, _ in self._handlers.get(event_type, [])]

    async def dispatch(self, event: ExtendableEvent) -> ExtendableEvent:
        """Run every handler for ``event``.

        Handlers only schedule work; callers decide whether to await
        ``event.settled()`` (lifecycle events) or let it finish in the
        background (fetch events).
        """
        for name, handler in self._handlers.get(event.type, []):
            result = handler(event)
            if inspect.isawaitable(result):
                await result
            logger.debug("event_handler_ran", event_type=event.type, handler=name)
        return event
