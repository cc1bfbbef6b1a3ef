"""Shared HTTP plumbing for providers.

Wraps httpx so every provider speaks the gateway's error taxonomy:
timeouts become UpstreamTimeoutError, transport failures and unexpected
statuses become UpstreamTransientError, 404 is NotFoundError and 429 is
RateLimitedError.
"""

import json
import logging
from typing import Any

import httpx
from bs4 import BeautifulSoup

from ptgen_gateway.errors import (
    NotFoundError,
    RateLimitedError,
    UpstreamTimeoutError,
    UpstreamTransientError,
)

logger = logging.getLogger(__name__)

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/139.0.0.0 Safari/537.36"
)

HTML_HEADERS = {
    "User-Agent": BROWSER_USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "zh-CN,zh;q=0.9,en-US;q=0.8",
}

JSON_HEADERS = {
    "User-Agent": BROWSER_USER_AGENT,
    "Accept": "application/json",
    "Accept-Language": "en-US,en;q=0.9",
}

DEFAULT_TIMEOUT = 10.0


def build_client(timeout: float = DEFAULT_TIMEOUT) -> httpx.AsyncClient:
    """Create the AsyncClient shared by all providers."""
    return httpx.AsyncClient(
        timeout=timeout,
        follow_redirects=True,
        limits=httpx.Limits(max_connections=100, max_keepalive_connections=20),
    )


def check_status(response: httpx.Response, source: str) -> None:
    """Map an upstream status to a typed error.

    Raises:
        NotFoundError: 404
        RateLimitedError: 429
        UpstreamTransientError: Any other status >= 400
    """
    status = response.status_code
    if status == 404:
        raise NotFoundError()
    if status == 429:
        raise RateLimitedError(f"{source} API rate limit exceeded")
    if status >= 400:
        raise UpstreamTransientError(f"{source} request failed with status {status}")


def parse_json(text: str | bytes, source: str) -> Any:
    try:
        return json.loads(text)
    except ValueError as e:
        raise UpstreamTransientError(f"{source} response parsing failed") from e


def parse_json_ld(soup: BeautifulSoup) -> dict[str, Any]:
    """Return the first JSON-LD object on a page, or {} when absent or unreadable."""
    script = soup.find("script", attrs={"type": "application/ld+json"})
    if script is None or not script.string:
        return {}

    text = "".join(script.string.splitlines()).replace("\t", "")
    try:
        data = json.loads(text)
    except ValueError:
        # Some pages wrap the object in stray markup; keep the outermost braces
        start, end = text.find("{"), text.rfind("}")
        if start < 0 or end <= start:
            return {}
        try:
            data = json.loads(text[start : end + 1])
        except ValueError:
            return {}
    return data if isinstance(data, dict) else {}


class HttpProvider:
    """Base for providers that talk HTTP through one AsyncClient.

    The client is injected (the application shares one across providers)
    or created lazily; only a lazily created client is closed by
    :meth:`close`.
    """

    name = "http"
    label = "HTTP"

    def __init__(self, client: httpx.AsyncClient | None = None, timeout: float = DEFAULT_TIMEOUT) -> None:
        """Initialize the provider.

        Args:
            client: Shared AsyncClient. Created on first use when None.
            timeout: Per-request timeout in seconds.
        """
        self._client = client
        self._owns_client = client is None
        self._timeout = timeout

    @property
    def client(self) -> httpx.AsyncClient:
        """Lazy-load the async HTTP client."""
        if self._client is None:
            self._client = build_client(self._timeout)
        return self._client

    async def _request(
        self,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
        check: bool = True,
    ) -> httpx.Response:
        try:
            response = await self.client.get(
                url,
                params=params,
                headers=headers,
                timeout=timeout or self._timeout,
            )
        except httpx.TimeoutException as e:
            raise UpstreamTimeoutError(f"{self.label} API请求超时 | {self.label} API request timeout") from e
        except httpx.HTTPError as e:
            raise UpstreamTransientError(f"{self.label} request failed: {e}") from e

        if check:
            check_status(response, self.label)
        return response

    async def get_json(self, url: str, **kwargs: Any) -> Any:
        """GET a URL and decode its JSON body.

        Raises:
            GatewayError: Transport failure, error status or unreadable body
        """
        kwargs.setdefault("headers", JSON_HEADERS)
        response = await self._request(url, **kwargs)
        return parse_json(response.content, self.label)

    async def get_text(self, url: str, **kwargs: Any) -> str:
        kwargs.setdefault("headers", HTML_HEADERS)
        response = await self._request(url, **kwargs)
        return response.text

    async def close(self) -> None:
        """Close the HTTP client if this provider created it."""
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
