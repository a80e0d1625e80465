"""UpdateCoordinator - page-side handling of a new worker version.

State machine, one instance per page load:

    IDLE -> WAITING_DETECTED -> ACTIVATION_REQUESTED -> RELOADING

The controller-changed listener is registered before SKIP_WAITING is sent,
so the new worker cannot take control unobserved. The listener is one-shot
and guarded by the state, so a page reloads at most once.
"""

import inspect
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

import structlog

from dinutri_offline.models.worker import WorkerMessage, WorkerState
from dinutri_offline.worker.clients import CONTROLLER_CHANGE, Client
from dinutri_offline.worker.registration import WorkerRegistration
from dinutri_offline.worker.service_worker import ServiceWorker

logger = structlog.get_logger(__name__)

Notifier = Callable[[str, str, float], Awaitable[None] | None]
Reloader = Callable[[], Awaitable[Any] | Any]

UPDATE_TITLE = "Update available"
UPDATE_DESCRIPTION = "A new version of the app is ready and is being installed."


class UpdateState(str, Enum):
    IDLE = "idle"
    WAITING_DETECTED = "waiting_detected"
    ACTIVATION_REQUESTED = "activation_requested"
    RELOADING = "reloading"


def log_notifier(title: str, description: str, duration: float) -> None:
    logger.info("update_notification", title=title, description=description, duration=duration)


class UpdateCoordinator:
    """Detects a waiting worker, activates it, reloads the page once.

    Args:
        registration: Registration the page belongs to
        page: The page (client) running this coordinator
        notifier: Shows a transient notification (title, description, seconds)
        reload: Reloads the page; defaults to ``page.reload``
        notification_duration: Seconds before the notification auto-dismisses
    """

    def __init__(
        self,
        registration: WorkerRegistration,
        page: Client,
        notifier: Notifier | None = None,
        reload: Reloader | None = None,
        notification_duration: float = 5.0,
    ) -> None:
        self.registration = registration
        self.page = page
        self.notifier = notifier or log_notifier
        self.reload = reload or page.reload
        self.notification_duration = notification_duration
        self.state = UpdateState.IDLE
        self.worker: ServiceWorker | None = None
        self._started = False

    async def start(self) -> UpdateState:
        """Check for a waiting worker and watch for new ones."""
        if self._started:
            return self.state
        self._started = True
        self.registration.on_update_found(self._on_update_found)

        waiting = self.registration.waiting
        if waiting is not None:
            logger.info("coordinator_waiting_worker_found", version=waiting.version)
            await self._request_activation(waiting)
        return self.state

    def stop(self) -> None:
        self.registration.remove_update_listener(self._on_update_found)

    async def _on_update_found(self, worker: ServiceWorker) -> None:
        async def on_state(changed: ServiceWorker, state: WorkerState) -> None:
            # Only an update matters: the page is already served by a worker
            if state == WorkerState.INSTALLED and self.page.controller is not None:
                logger.info("coordinator_update_installed", version=changed.version)
                await self._request_activation(changed)

        worker.on_state_change(on_state)

    async def _request_activation(self, worker: ServiceWorker) -> None:
        if self.state != UpdateState.IDLE:
            return
        self.worker = worker
        self.state = UpdateState.WAITING_DETECTED

        result = self.notifier(UPDATE_TITLE, UPDATE_DESCRIPTION, self.notification_duration)
        if inspect.isawaitable(result):
            await result

        self.page.add_event_listener(
            CONTROLLER_CHANGE, self._on_controller_change, once=True
        )
        self.state = UpdateState.ACTIVATION_REQUESTED
        logger.info("coordinator_sending_skip_waiting", version=worker.version)
        await worker.post_message(WorkerMessage.skip_waiting(), source=self.page)

    async def _on_controller_change(self) -> None:
        if self.state != UpdateState.ACTIVATION_REQUESTED:
            return
        self.state = UpdateState.RELOADING
        self.stop()
        logger.info("coordinator_controller_changed_reloading", client_id=self.page.id)
        result = self.reload()
        if inspect.isawaitable(result):
            await result
