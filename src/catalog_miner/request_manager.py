"""
HTTP fetching for the Tracker Catalog Miner.

RequestManager wraps an httpx.AsyncClient with:
- A per-run response cache (URL -> decoded body)
- Site-specific charset decoding (cp1251 unless the server says UTF-8)
- A single re-attempt with browser navigation headers on HTTP 403
- An optional outbound proxy applied to every request
"""

import logging
from typing import Dict, Optional
from urllib.parse import urlparse

import httpx

from .exceptions import NetworkError

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30.0

# Legacy Cyrillic codepage used by the tracker when no charset is declared
LEGACY_ENCODING = "cp1251"

DEFAULT_HEADERS = {
    'User-Agent': 'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36',
    'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,image/apng,*/*;q=0.8',
    'Accept-Language': 'pt-BR,pt;q=0.9,en;q=0.8,ru;q=0.7',
    'Accept-Encoding': 'gzip, deflate',
    'Connection': 'keep-alive',
}

# Extra headers sent on the 403 re-attempt, mimicking a top-level navigation
NAVIGATION_HEADERS = {
    'Upgrade-Insecure-Requests': '1',
    'Sec-Fetch-Dest': 'document',
    'Sec-Fetch-Mode': 'navigate',
    'Sec-Fetch-Site': 'same-origin',
    'Sec-Fetch-User': '?1',
    'Cache-Control': 'max-age=0',
}


def decode_body(content: bytes, content_type: str) -> str:
    """
    Decode a response body using the declared content type.

    cp1251/windows-1251 and utf-8 are honoured; anything else (including
    no declaration at all) is decoded as cp1251.
    """
    content_type = (content_type or "").lower()
    if "windows-1251" in content_type or "cp1251" in content_type:
        encoding = LEGACY_ENCODING
    elif "utf-8" in content_type:
        encoding = "utf-8"
    else:
        encoding = LEGACY_ENCODING
    return content.decode(encoding, errors="replace")


class RequestManager:
    """
    Cached HTTP fetcher shared by all processors of one run.

    Usage:
        async with RequestManager(proxy_url=settings.proxy_url) as requests:
            html = await requests.fetch("https://rutracker.org/forum/index.php")

    A client may be injected (tests use httpx.MockTransport); an injected
    client is not closed by the manager.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        proxy_url: Optional[str] = None,
        timeout: float = REQUEST_TIMEOUT,
    ):
        self._own_client = client is None
        if client is None:
            client = httpx.AsyncClient(
                headers=DEFAULT_HEADERS,
                timeout=timeout,
                follow_redirects=True,
                proxy=proxy_url or None,
            )
        self.client = client
        self.proxy_url = proxy_url
        self._cache: Dict[str, str] = {}

    async def __aenter__(self) -> "RequestManager":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    async def aclose(self):
        if self._own_client:
            await self.client.aclose()

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def clear_cache(self):
        self._cache.clear()

    async def _get(self, url: str, headers: Optional[Dict[str, str]] = None) -> httpx.Response:
        try:
            return await self.client.get(url, headers=headers)
        except httpx.HTTPError as e:
            raise NetworkError(url, message=f"{type(e).__name__}: {e}") from e

    async def fetch(self, url: str) -> str:
        """
        Fetch ``url`` and return the decoded body.

        Repeated fetches of the same URL within a run are served from the
        cache. Only successful bodies are cached.

        Raises:
            NetworkError: on transport errors, timeouts, a non-2xx status,
                or a 403 that persists after the navigation-header retry
        """
        if url in self._cache:
            return self._cache[url]

        logger.debug("GET %s", url)
        response = await self._get(url)

        if response.status_code == 403:
            logger.warning("HTTP 403 for %s, retrying once with navigation headers", url)
            parsed = urlparse(url)
            retry_headers = dict(NAVIGATION_HEADERS)
            retry_headers['Referer'] = f"{parsed.scheme}://{parsed.netloc}/"
            response = await self._get(url, headers=retry_headers)

        if not response.is_success:
            logger.error("HTTP %d for %s", response.status_code, url)
            raise NetworkError(url, status=response.status_code)

        text = decode_body(response.content, response.headers.get('content-type', ''))
        self._cache[url] = text
        return text
