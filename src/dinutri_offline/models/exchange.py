"""HTTP exchange types used by the cache store and the fetch interceptor.

A response body is single-read: ``OwnedResponse`` makes that explicit. Code
that both returns a response and stores it must ``clone()`` first, then hand
one copy to each consumer.
"""

import base64
import hashlib
import json
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

import httpx

from dinutri_offline.core.exceptions import BodyConsumedError

WEB_SCHEMES = frozenset({"http", "https"})


class RequestMode(str, Enum):
    """Request mode as reported by the requester."""

    NAVIGATE = "navigate"
    SAME_ORIGIN = "same-origin"
    NO_CORS = "no-cors"
    CORS = "cors"


def to_cache_key(target: "FetchRequest | str") -> str:
    """Normalize a request or URL into the key entries are stored under.

    Keys are origin-relative (path plus query, fragment dropped) so that the
    same resource matches whether it was stored from a shell path like ``/``
    or from a full request URL.
    """
    if isinstance(target, FetchRequest):
        return target.cache_key
    # Relative paths are percent-encoded the same way request URLs are
    return httpx.URL(target.split("#", 1)[0]).raw_path.decode("ascii")


@dataclass
class FetchRequest:
    """An outgoing request seen by the fetch interceptor."""

    url: str
    method: str = "GET"
    headers: dict[str, str] = field(default_factory=dict)
    mode: RequestMode = RequestMode.NO_CORS
    body: bytes = b""

    def __post_init__(self) -> None:
        self.method = self.method.upper()
        self.headers = {k.lower(): v for k, v in self.headers.items()}
        self._parsed = httpx.URL(self.url.split("#", 1)[0])

    @classmethod
    def get(cls, url: str, **kwargs: Any) -> "FetchRequest":
        return cls(url=url, method="GET", **kwargs)

    @property
    def scheme(self) -> str:
        return self._parsed.scheme

    @property
    def path(self) -> str:
        return self._parsed.path

    @property
    def cache_key(self) -> str:
        return self._parsed.raw_path.decode("ascii")

    @property
    def is_navigation(self) -> bool:
        return self.mode == RequestMode.NAVIGATE

    @property
    def is_web_scheme(self) -> bool:
        return self.scheme in WEB_SCHEMES

    def credential_scope(self, header_names: Iterable[str]) -> str | None:
        """Digest identifying whose credentials this request carries.

        Args:
            header_names: Headers that identify a user (e.g. cookie, authorization)

        Returns:
            A short hex digest, or None for an anonymous request
        """
        parts = [
            f"{name}={self.headers[name]}"
            for name in sorted({n.lower() for n in header_names})
            if self.headers.get(name)
        ]
        if not parts:
            return None
        return hashlib.sha256("\n".join(parts).encode()).hexdigest()[:16]


class OwnedResponse:
    """HTTP response whose body can be consumed exactly once.

    ``clone()`` must happen before the body is read; afterwards both the
    clone and the original own an independent copy of the payload.
    """

    def __init__(
        self,
        status: int,
        headers: dict[str, str] | None = None,
        body: bytes = b"",
        url: str | None = None,
    ) -> None:
        self.status = status
        self.headers = {k.lower(): v for k, v in (headers or {}).items()}
        self.url = url
        self._body: bytes | None = body

    def __repr__(self) -> str:
        return f"<OwnedResponse(status={self.status}, url={self.url!r}, used={self.body_used})>"

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def body_used(self) -> bool:
        return self._body is None

    def read(self) -> bytes:
        """Consume and return the body."""
        if self._body is None:
            raise BodyConsumedError()
        body, self._body = self._body, None
        return body

    def json(self) -> Any:
        return json.loads(self.read())

    def clone(self) -> "OwnedResponse":
        """Duplicate the response so two consumers can each read it."""
        if self._body is None:
            raise BodyConsumedError(message="Cannot clone a consumed response")
        return OwnedResponse(
            status=self.status,
            headers=dict(self.headers),
            body=bytes(self._body),
            url=self.url,
        )


@dataclass
class ResponseSnapshot:
    """Full snapshot of a response taken at write time.

    Stored in cache partitions; never partial, never streaming.
    """

    status: int
    headers: dict[str, str]
    body: bytes
    url: str | None = None
    stored_at: str = field(default_factory=lambda: datetime.now(UTC).isoformat())

    @classmethod
    def from_response(cls, response: OwnedResponse) -> "ResponseSnapshot":
        """Consume ``response`` into a snapshot. Pass a clone."""
        return cls(
            status=response.status,
            headers=dict(response.headers),
            body=response.read(),
            url=response.url,
        )

    def to_response(self) -> OwnedResponse:
        return OwnedResponse(
            status=self.status,
            headers=dict(self.headers),
            body=self.body,
            url=self.url,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict for storage."""
        return {
            "status": self.status,
            "headers": self.headers,
            "body": base64.b64encode(self.body).decode("ascii"),
            "url": self.url,
            "stored_at": self.stored_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ResponseSnapshot":
        """Create from stored dict."""
        return cls(
            status=data["status"],
            headers=data.get("headers", {}),
            body=base64.b64decode(data.get("body", "")),
            url=data.get("url"),
            stored_at=data.get("stored_at", ""),
        )
