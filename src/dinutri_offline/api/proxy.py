"""Catch-all route: every other request goes through the active worker."""

from fastapi import APIRouter, Request, Response

from dinutri_offline.api.dependencies import RegistrationDep
from dinutri_offline.models.exchange import FetchRequest, RequestMode

router = APIRouter()

PROXIED_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]
KNOWN_MODES = frozenset(mode.value for mode in RequestMode)


def request_mode(request: Request) -> RequestMode:
    """Mode from ``Sec-Fetch-Mode``, else infer navigations from ``Accept``."""
    declared = request.headers.get("sec-fetch-mode", "")
    if declared in KNOWN_MODES:
        return RequestMode(declared)
    if request.method == "GET" and "text/html" in request.headers.get("accept", ""):
        return RequestMode.NAVIGATE
    return RequestMode.NO_CORS


async def build_fetch_request(request: Request) -> FetchRequest:
    return FetchRequest(
        url=str(request.url),
        method=request.method,
        headers=dict(request.headers),
        mode=request_mode(request),
        body=await request.body(),
    )


@router.api_route("/{path:path}", methods=PROXIED_METHODS, include_in_schema=False)
async def proxy(request: Request, registration: RegistrationDep) -> Response:
    fetch_request = await build_fetch_request(request)
    response = await registration.fetch(fetch_request)
    return Response(
        content=response.read(),
        status_code=response.status,
        headers=response.headers,
    )
