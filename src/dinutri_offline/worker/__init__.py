"""Worker package for DiNutri Offline.

This module exports the worker runtime: versions, registration, pages and the
page-side update coordinator.
"""

from dinutri_offline.worker.clients import Client, Clients
from dinutri_offline.worker.coordinator import UpdateCoordinator, UpdateState
from dinutri_offline.worker.events import (
    ActivateEvent,
    EventDispatcher,
    ExtendableEvent,
    FetchEvent,
    InstallEvent,
    MessageEvent,
    SyncEvent,
)
from dinutri_offline.worker.interceptor import FetchInterceptor, FetchStrategy
from dinutri_offline.worker.lifecycle import CacheLifecycle
from dinutri_offline.worker.registration import WorkerRegistration
from dinutri_offline.worker.service_worker import ServiceWorker

__all__ = [
    # Pages
    "Client",
    "Clients",
    # Events
    "ActivateEvent",
    "EventDispatcher",
    "ExtendableEvent",
    "FetchEvent",
    "InstallEvent",
    "MessageEvent",
    "SyncEvent",
    # Worker
    "CacheLifecycle",
    "FetchInterceptor",
    "FetchStrategy",
    "ServiceWorker",
    "WorkerRegistration",
    # Page side
    "UpdateCoordinator",
    "UpdateState",
]
