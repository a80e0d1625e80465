"""Pydantic schemas for the gateway control endpoints.

This module provides:
- Error responses (consistent error format)
- Worker registration views
- Deployment and sync requests
"""

from pydantic import BaseModel, ConfigDict, Field

from dinutri_offline.models.worker import WorkerState

# =============================================================================
# Error Schemas
# =============================================================================


class ErrorDetail(BaseModel):
    """Details of an error response.

    Attributes:
        code: Machine-readable error code (e.g., "NETWORK_ERROR")
        message: Human-readable error description
        request_id: Correlation ID for tracing (optional)
        details: Additional error context (optional)
    """

    code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error description")
    request_id: str | None = Field(
        None, description="Request correlation ID for tracing"
    )
    details: dict[str, object] | None = Field(
        None, description="Additional error context"
    )

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "code": "NETWORK_ERROR",
                "message": "Failed to fetch http://localhost:5000/api/patients",
                "request_id": "abc-123-def-456",
            }
        }
    )


class ErrorResponse(BaseModel):
    """Standard error response wrapper."""

    error: ErrorDetail


# =============================================================================
# Registration Schemas
# =============================================================================


class WorkerInfo(BaseModel):
    """One worker version held by the registration."""

    version: str = Field(..., description="Cache version token")
    state: WorkerState = Field(..., description="Lifecycle state")
    caches: list[str] = Field(..., description="Partition names owned by this version")


class RegistrationResponse(BaseModel):
    """Current installing / waiting / active workers."""

    installing: WorkerInfo | None = None
    waiting: WorkerInfo | None = None
    active: WorkerInfo | None = None
    clients: int = Field(0, description="Number of connected pages")


class DeployRequest(BaseModel):
    """Register a new worker version."""

    model_config = ConfigDict(str_strip_whitespace=True)

    version: str | None = Field(
        None,
        min_length=1,
        description="Version token; generated from the current time when omitted",
    )


class SyncRequest(BaseModel):
    """Fire a sync event on the active worker."""

    tag: str = Field(..., min_length=1, description="Sync tag")


class CacheListing(BaseModel):
    """Partitions and the keys stored in each, in creation order."""

    caches: dict[str, list[str]]
