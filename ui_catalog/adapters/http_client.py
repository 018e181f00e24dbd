"""
HTTP transport for source adapters.

SiteHttpClient wraps httpx.AsyncClient and translates transport outcomes
into the adapter error taxonomy:

- httpx timeouts            -> AdapterTimeoutError (retryable)
- connect/read errors       -> AdapterFetchError (retryable)
- 429 and 5xx responses     -> AdapterFetchError (retryable)
- other 4xx responses       -> AdapterFetchError (not retryable)
- unparseable JSON bodies   -> AdapterFetchError (not retryable)

It does not retry by itself; the orchestrator owns the retry loop so that
retries, pacing and deadlines are applied uniformly to every adapter.
"""

import logging
from typing import Any

import httpx

from ui_catalog.config.settings import get_settings
from ui_catalog.errors import AdapterFetchError, AdapterTimeoutError

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


class SiteHttpClient:
    """
    Async HTTP client bound to one source site.

    Example:
        async with SiteHttpClient("https://ui.shadcn.com") as client:
            index = await client.get_json("/r/index.json")
    """

    def __init__(
        self,
        base_url: str,
        timeout: float | None = None,
        user_agent: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        settings = get_settings()
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout if timeout is not None else settings.http_timeout_seconds
        self.user_agent = user_agent or settings.http_user_agent
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "SiteHttpClient":
        await self.open()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def open(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers={"User-Agent": self.user_agent},
                follow_redirects=True,
                transport=self._transport,
            )

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def get(self, path: str, params: dict[str, Any] | None = None) -> httpx.Response:
        """
        GET a path relative to the site base URL.

        Raises:
            AdapterTimeoutError: the request timed out
            AdapterFetchError: transport failure or non-2xx status
        """
        await self.open()
        try:
            response = await self._client.get(path, params=params)
        except httpx.TimeoutException as e:
            raise AdapterTimeoutError(f"Timeout fetching {self.base_url}{path}") from e
        except httpx.TransportError as e:
            raise AdapterFetchError(f"Transport error fetching {path}: {e}") from e

        status = response.status_code
        if status >= 400:
            retryable = status in RETRYABLE_STATUS_CODES
            logger.warning(
                f"HTTP {status} from {self.base_url}{path} "
                f"({'retryable' if retryable else 'not retryable'})"
            )
            raise AdapterFetchError(
                f"HTTP {status} fetching {path}",
                retryable=retryable,
                status_code=status,
            )
        return response

    async def get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        response = await self.get(path, params=params)
        try:
            return response.json()
        except ValueError as e:
            raise AdapterFetchError(
                f"Invalid JSON from {path}: {e}", retryable=False
            ) from e
