"""Network access to the upstream DiNutri origin.

The fetcher is the gateway's equivalent of the platform ``fetch()``: it only
fails on transport errors. Any HTTP status, including 4xx/5xx, is a
successful fetch and is returned to the caller.
"""

import httpx
import structlog

from dinutri_offline.config import Settings, get_settings
from dinutri_offline.core.exceptions import NetworkError, UpstreamTimeoutError
from dinutri_offline.models.exchange import FetchRequest, OwnedResponse

logger = structlog.get_logger(__name__)

# Dropped from upstream responses: the body is fully buffered and decoded
HOP_BY_HOP_HEADERS = frozenset(
    {
        "connection",
        "content-encoding",
        "content-length",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailer",
        "transfer-encoding",
        "upgrade",
    }
)

# Dropped from GET requests: a 304 has no body to serve or store offline
CONDITIONAL_HEADERS = frozenset(
    {
        "if-match",
        "if-modified-since",
        "if-none-match",
        "if-range",
        "if-unmodified-since",
    }
)


class NetworkFetcher:
    """Async client for the upstream origin.

    Usage:
        ```python
        fetcher = NetworkFetcher(settings)
        response = await fetcher.fetch(FetchRequest.get("http://gw/api/me"))
        ```
    """

    def __init__(
        self,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the fetcher.

        Args:
            settings: Application settings (defaults to cached settings)
            transport: Optional httpx transport, used in tests
        """
        self._settings = settings or get_settings()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def _user_agent(self) -> str:
        return f"{self._settings.app_name}/{self._settings.app_version}"

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._settings.upstream_url,
                timeout=self._settings.upstream_timeout,
                headers={"User-Agent": self._user_agent},
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def fetch(self, request: FetchRequest) -> OwnedResponse:
        """Fetch ``request`` from the upstream origin.

        Raises:
            UpstreamTimeoutError: When the origin does not answer in time
            NetworkError: On any other transport failure
        """
        client = await self._get_client()
        excluded = {"host", "content-length"}
        if request.method == "GET":
            excluded |= CONDITIONAL_HEADERS
        headers = {k: v for k, v in request.headers.items() if k not in excluded}

        try:
            upstream = await client.request(
                request.method,
                request.cache_key,
                headers=headers,
                content=request.body or None,
            )
        except httpx.TimeoutException as e:
            logger.warning("upstream_timeout", url=request.url, error=str(e))
            raise UpstreamTimeoutError(url=request.url, error=str(e)) from e
        except httpx.RequestError as e:
            logger.warning("upstream_request_error", url=request.url, error=str(e))
            raise NetworkError(url=request.url, error=str(e)) from e

        return OwnedResponse(
            status=upstream.status_code,
            headers={
                k: v
                for k, v in upstream.headers.items()
                if k.lower() not in HOP_BY_HOP_HEADERS
            },
            body=upstream.content,
            url=request.url,
        )
