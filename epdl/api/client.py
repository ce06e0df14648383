"""
HTTP capability shared by every stage of a download session.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

import aiohttp

from epdl.exceptions import NetworkError

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class HttpResponse:
    """The body of a finished request and the URL it was finally served from."""

    body: bytes
    final_url: str
    status: int = 200


class HttpClient:
    """
    Async HTTP client built on a single pooled aiohttp session.

    One instance is created per run and handed explicitly to the manifest
    processor, the download engine and the font downloader.
    """

    def __init__(
        self,
        max_connections: int = 5,
        proxy: Optional[str] = None,
        user_agent: Optional[str] = None,
        timeout: float = 90.0,
    ):
        """
        Initializes the client.

        Args:
            max_connections: The number of concurrent downloads, used to size the pool.
            proxy: Optional HTTP(S) proxy URL applied to every request.
            user_agent: User-Agent header sent with every request.
            timeout: Socket read timeout in seconds.
        """
        self.max_connections = max_connections
        self.proxy = proxy
        self.user_agent = user_agent
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None

    async def _initialize_session(self) -> aiohttp.ClientSession:
        """Ensures an active aiohttp session is available."""
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(
                limit=self.max_connections * 2,
                limit_per_host=self.max_connections,
                ttl_dns_cache=300,
                enable_cleanup_closed=True,
            )
            headers = {"Accept": "*/*"}
            if self.user_agent:
                headers["User-Agent"] = self.user_agent
            self._session = aiohttp.ClientSession(
                connector=connector,
                headers=headers,
                timeout=aiohttp.ClientTimeout(
                    total=None, sock_connect=15, sock_read=self.timeout
                ),
            )
            log.debug(f"Created HTTP pool with limit_per_host={self.max_connections}")
        return self._session

    async def close(self) -> None:
        """Gracefully closes the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()
            log.debug("HTTP connection pool closed.")

    async def __aenter__(self) -> "HttpClient":
        await self._initialize_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _request(self, method: str, url: str, **kwargs) -> HttpResponse:
        session = await self._initialize_session()
        try:
            async with session.request(
                method, url, allow_redirects=True, proxy=self.proxy, **kwargs
            ) as response:
                if response.status >= 400:
                    raise NetworkError(
                        f"{method} {url} failed with HTTP {response.status}",
                        url=url,
                        status=response.status,
                    )
                body = await response.read()
                return HttpResponse(
                    body=body, final_url=str(response.url), status=response.status
                )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            log.debug(f"{method} {url} failed: {e!r}")
            raise NetworkError(f"{method} {url} failed: {e or type(e).__name__}", url=url) from e

    async def get(self, url: str) -> HttpResponse:
        """Fetches `url`, following redirects."""
        return await self._request("GET", url)

    async def post(self, url: str, form: Optional[dict[str, str]] = None) -> HttpResponse:
        """Posts url-encoded form fields to `url`."""
        return await self._request("POST", url, data=form or {})
