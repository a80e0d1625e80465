"""Custom exception hierarchy for DiNutri Offline.

This module defines a consistent exception hierarchy that enables:
- Structured error responses with error codes
- Consistent HTTP status code mapping for the gateway
- Machine-readable error handling for API consumers

Usage:
    from dinutri_offline.core.exceptions import NetworkError

    raise NetworkError(url="http://origin/api/patients")
"""

from typing import Any


class DiNutriOfflineError(Exception):
    """Base exception for all DiNutri Offline errors.

    Attributes:
        code: Machine-readable error code (e.g., "NETWORK_ERROR")
        message: Human-readable error message
        status_code: HTTP status code to return
        details: Additional error details (optional)
    """

    code: str = "INTERNAL_ERROR"
    message: str = "An unexpected error occurred"
    status_code: int = 500

    def __init__(
        self,
        message: str | None = None,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Override default message
            code: Override default error code
            details: Additional error details
        """
        if message:
            self.message = message
        if code:
            self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self, request_id: str | None = None) -> dict[str, Any]:
        """Convert exception to API error response format.

        Args:
            request_id: Request correlation ID

        Returns:
            Error response dictionary
        """
        error: dict[str, Any] = {
            "code": self.code,
            "message": self.message,
        }
        if request_id:
            error["request_id"] = request_id
        if self.details:
            error["details"] = self.details
        return {"error": error}


# =============================================================================
# Network Errors (502, 504)
# =============================================================================


class NetworkError(DiNutriOfflineError):
    """Raised when the upstream origin cannot be reached."""

    code: str = "NETWORK_ERROR"
    message: str = "Failed to fetch from the network"
    status_code: int = 502

    def __init__(
        self,
        url: str | None = None,
        error: str | None = None,
        message: str | None = None,
    ) -> None:
        """Initialize with the failed URL and transport error."""
        details: dict[str, Any] = {}
        if url:
            details["url"] = url
        if error:
            details["error"] = error

        if not message and url:
            message = f"Failed to fetch {url}"

        super().__init__(message=message, details=details if details else None)


class UpstreamTimeoutError(NetworkError):
    """Raised when the upstream origin does not answer in time."""

    code: str = "UPSTREAM_TIMEOUT"
    message: str = "Upstream request timed out"
    status_code: int = 504


# =============================================================================
# Cache Errors
# =============================================================================


class CacheStorageError(DiNutriOfflineError):
    """Raised when the cache storage backend fails."""

    code: str = "CACHE_STORAGE_ERROR"
    message: str = "Cache storage operation failed"

    def __init__(
        self,
        cache_name: str | None = None,
        error: str | None = None,
        message: str | None = None,
    ) -> None:
        details: dict[str, Any] = {}
        if cache_name:
            details["cache_name"] = cache_name
        if error:
            details["error"] = error
        super().__init__(message=message, details=details if details else None)


class UnsupportedRequestError(DiNutriOfflineError):
    """Raised when a request cannot be stored (only GET is cacheable)."""

    code: str = "UNSUPPORTED_REQUEST"
    message: str = "Only GET requests can be cached"
    status_code: int = 400

    def __init__(self, method: str | None = None, message: str | None = None) -> None:
        details: dict[str, Any] = {}
        if method:
            details["method"] = method
            if not message:
                message = f"Cannot cache {method} requests"
        super().__init__(message=message, details=details if details else None)


class BodyConsumedError(DiNutriOfflineError):
    """Raised when a response body is read or cloned after being consumed."""

    code: str = "BODY_CONSUMED"
    message: str = "Response body has already been consumed"


# =============================================================================
# Worker Errors (400, 409)
# =============================================================================


class WorkerStateError(DiNutriOfflineError):
    """Raised when an operation does not fit the worker lifecycle state."""

    code: str = "WORKER_STATE_ERROR"
    message: str = "Operation not allowed in the current worker state"
    status_code: int = 409

    def __init__(
        self,
        state: str | None = None,
        version: str | None = None,
        message: str | None = None,
    ) -> None:
        details: dict[str, Any] = {}
        if state:
            details["state"] = state
        if version:
            details["version"] = version
        super().__init__(message=message, details=details if details else None)


class InvalidMessageError(DiNutriOfflineError):
    """Raised when a worker message has an unknown shape."""

    code: str = "INVALID_MESSAGE"
    message: str = "Unsupported worker message"
    status_code: int = 400
