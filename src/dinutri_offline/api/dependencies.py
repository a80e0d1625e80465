"""FastAPI dependencies for the gateway.

Resources are created once in the application lifespan and stored on
``app.state``; these helpers hand them to route handlers.
"""

from typing import Annotated

from fastapi import Depends, Request

from dinutri_offline.config import Settings
from dinutri_offline.services.cache import CacheStorage
from dinutri_offline.worker.registration import WorkerRegistration


def get_settings_from_request(request: Request) -> Settings:
    """Get settings from app state (set by the application factory)."""
    return request.app.state.settings


def get_registration(request: Request) -> WorkerRegistration:
    """Get the worker registration created during startup."""
    registration = getattr(request.app.state, "registration", None)
    if registration is None:
        raise RuntimeError("Worker registration not initialized. Is the lifespan running?")
    return registration


def get_storage(request: Request) -> CacheStorage:
    return get_registration(request).storage


SettingsDep = Annotated[Settings, Depends(get_settings_from_request)]
RegistrationDep = Annotated[WorkerRegistration, Depends(get_registration)]
StorageDep = Annotated[CacheStorage, Depends(get_storage)]
