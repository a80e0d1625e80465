"""FastAPI application factory for DiNutri Offline.

This module creates and configures the gateway with:
- Lifespan management (cache storage, upstream fetcher, worker registration)
- Middleware configuration (request ID, logging)
- Exception handlers
- Control routes and the catch-all proxy route
"""

import time
import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import httpx
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from dinutri_offline.config import CacheConfig, Settings, get_settings
from dinutri_offline.core.exceptions import DiNutriOfflineError
from dinutri_offline.core.logging import (
    clear_correlation_id,
    configure_logging,
    get_logger,
    set_correlation_id,
)
from dinutri_offline.services.cache import build_cache_storage
from dinutri_offline.services.network import NetworkFetcher
from dinutri_offline.worker.registration import WorkerRegistration

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application lifespan events.

    Startup builds the cache storage, the upstream fetcher and the worker
    registration, then installs the configured worker version. Shutdown waits
    for pending cache writes and closes connections.
    """
    settings: Settings = app.state.settings

    configure_logging(settings)
    startup_logger = get_logger(__name__)

    storage = build_cache_storage(settings)
    fetcher = NetworkFetcher(settings, transport=app.state.upstream_transport)
    registration = WorkerRegistration(storage, fetcher)
    app.state.registration = registration

    await registration.register(CacheConfig.from_settings(settings))

    startup_logger.info(
        "Application starting",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.app_env.value,
        cache_version=settings.cache_version,
        upstream=settings.upstream_url,
    )

    yield

    await registration.drain()
    await fetcher.close()
    await storage.close()
    app.state.registration = None

    startup_logger.info("Application shutting down", app_name=settings.app_name)


def create_app(
    settings: Settings | None = None,
    upstream_transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Optional settings override for testing
        upstream_transport: Optional httpx transport for the upstream origin

    Returns:
        FastAPI: Configured application instance
    """
    if settings is None:
        settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description=(
            "Offline-first caching gateway for the DiNutri web app. "
            "Serves API calls network-first, pages with a cached fallback "
            "and static assets cache-first."
        ),
        version=settings.app_version,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.upstream_transport = upstream_transport
    app.state.registration = None

    configure_middleware(app)
    configure_exception_handlers(app)
    configure_routes(app)

    return app


def configure_middleware(app: FastAPI) -> None:
    """Configure application middleware.

    Args:
        app: The FastAPI application instance
    """

    @app.middleware("http")
    async def logging_middleware(request: Request, call_next: Any) -> Any:
        """Log requests and responses with correlation ID."""
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        request.state.request_id = request_id
        set_correlation_id(request_id)

        request_logger = get_logger("dinutri_offline.request")
        start_time = time.perf_counter()

        request_logger.info(
            "request_started",
            method=request.method,
            path=request.url.path,
        )

        try:
            response = await call_next(request)

            duration_ms = (time.perf_counter() - start_time) * 1000
            request_logger.info(
                "request_completed",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round(duration_ms, 2),
            )

            response.headers["X-Request-ID"] = request_id
            return response

        except Exception as exc:
            duration_ms = (time.perf_counter() - start_time) * 1000
            request_logger.error(
                "request_failed",
                method=request.method,
                path=request.url.path,
                duration_ms=round(duration_ms, 2),
                error=str(exc),
            )
            raise

        finally:
            clear_correlation_id()


def configure_exception_handlers(app: FastAPI) -> None:
    """Configure global exception handlers.

    Args:
        app: The FastAPI application instance
    """
    exception_logger = get_logger("dinutri_offline.exceptions")

    @app.exception_handler(DiNutriOfflineError)
    async def offline_exception_handler(
        request: Request, exc: DiNutriOfflineError
    ) -> JSONResponse:
        """Handle DiNutri Offline exceptions with structured error response."""
        request_id = getattr(request.state, "request_id", None)

        if exc.status_code >= 500:
            exception_logger.error(
                "Application error",
                error_code=exc.code,
                error_message=exc.message,
                status_code=exc.status_code,
                path=request.url.path,
            )
        else:
            exception_logger.warning(
                "Client error",
                error_code=exc.code,
                error_message=exc.message,
                status_code=exc.status_code,
                path=request.url.path,
            )

        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_dict(request_id=request_id),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions with a consistent error response."""
        request_id = getattr(request.state, "request_id", None)

        exception_logger.exception(
            "Unhandled exception",
            error_type=type(exc).__name__,
            error_message=str(exc),
            path=request.url.path,
        )

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": {
                    "code": "INTERNAL_SERVER_ERROR",
                    "message": "An unexpected error occurred",
                    "request_id": request_id,
                }
            },
        )


def configure_routes(app: FastAPI) -> None:
    """Configure application routes.

    The proxy route matches every path, so it is included last.

    Args:
        app: The FastAPI application instance
    """

    @app.get(
        "/health/live",
        tags=["Health"],
        summary="Liveness probe",
        description="Returns OK if the service is running",
    )
    async def liveness() -> dict[str, str]:
        """Liveness probe for container orchestration."""
        return {"status": "ok"}

    @app.get(
        "/health/ready",
        tags=["Health"],
        summary="Readiness probe",
        description="Returns OK if the cache storage is reachable and a worker is active",
    )
    async def readiness(request: Request) -> dict[str, Any]:
        """Readiness probe checking dependent services."""
        registration: WorkerRegistration | None = request.app.state.registration
        storage_ok = registration is not None and await registration.storage.ping()
        worker_ok = registration is not None and registration.active is not None

        overall_status = "ok" if (storage_ok and worker_ok) else "error"

        return {
            "status": overall_status,
            "checks": {
                "cache_storage": "ok" if storage_ok else "error",
                "worker": "ok" if worker_ok else "error",
            },
        }

    from dinutri_offline.api.proxy import router as proxy_router
    from dinutri_offline.api.worker_routes import router as worker_router

    app.include_router(worker_router, prefix="/_sw", tags=["Worker"])
    app.include_router(proxy_router)


def cli() -> None:
    """Entry point for running the gateway with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "dinutri_offline.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
        log_level=settings.log_level.value.lower(),
    )


if __name__ == "__main__":
    cli()
