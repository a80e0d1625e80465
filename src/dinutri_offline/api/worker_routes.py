"""Worker control endpoints.

Provides endpoints to inspect the registration, deploy a new worker version,
message the waiting worker and list cache partitions.
"""

from fastapi import APIRouter, status

from dinutri_offline.api.dependencies import RegistrationDep, SettingsDep, StorageDep
from dinutri_offline.api.schemas import (
    CacheListing,
    DeployRequest,
    ErrorResponse,
    RegistrationResponse,
    SyncRequest,
)
from dinutri_offline.config import CacheConfig, generate_cache_version
from dinutri_offline.core.exceptions import WorkerStateError
from dinutri_offline.core.logging import get_logger
from dinutri_offline.models.worker import WorkerMessage

logger = get_logger(__name__)

router = APIRouter()


@router.get(
    "/registration",
    response_model=RegistrationResponse,
    summary="Registration state",
    description="Installing, waiting and active worker versions.",
)
async def get_registration_state(registration: RegistrationDep) -> RegistrationResponse:
    return RegistrationResponse.model_validate(registration.snapshot())


@router.post(
    "/register",
    response_model=RegistrationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Deploy a worker version",
    description=(
        "Install a new worker version. The first version activates at once; "
        "later versions wait until they receive SKIP_WAITING."
    ),
)
async def deploy_version(
    body: DeployRequest,
    registration: RegistrationDep,
    settings: SettingsDep,
) -> RegistrationResponse:
    version = body.version or generate_cache_version()
    logger.info("deploy_version_request", version=version)
    await registration.register(CacheConfig.from_settings(settings, version=version))
    return RegistrationResponse.model_validate(registration.snapshot())


@router.post(
    "/message",
    response_model=RegistrationResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Message the waiting worker",
    responses={
        409: {"model": ErrorResponse, "description": "No waiting worker"},
    },
)
async def post_message(
    message: WorkerMessage, registration: RegistrationDep
) -> RegistrationResponse:
    if registration.waiting is None:
        raise WorkerStateError(message="No waiting worker to receive the message")
    await registration.post_message_to_waiting(message)
    return RegistrationResponse.model_validate(registration.snapshot())


@router.post(
    "/sync",
    status_code=status.HTTP_202_ACCEPTED,
    summary="Fire a sync event",
    responses={
        409: {"model": ErrorResponse, "description": "No active worker"},
    },
)
async def trigger_sync(body: SyncRequest, registration: RegistrationDep) -> dict[str, str]:
    if registration.active is None:
        raise WorkerStateError(message="No active worker")
    await registration.active.sync(body.tag)
    return {"status": "accepted", "tag": body.tag}


@router.get(
    "/caches",
    response_model=CacheListing,
    summary="List cache partitions",
)
async def list_caches(storage: StorageDep) -> CacheListing:
    caches: dict[str, list[str]] = {}
    for name in await storage.keys():
        partition = await storage.open(name)
        caches[name] = await partition.keys()
    return CacheListing(caches=caches)
