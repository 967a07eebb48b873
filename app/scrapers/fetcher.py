"""
HTML fetcher - the only place the pipeline talks HTTP to job pages.

Timeouts are policy-fixed (settings.scrape_timeout_seconds). Every failure
mode is normalized to FetchError so the attempt lifecycle can decide
between retrying and giving up.
"""
import time
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse
from urllib.robotparser import RobotFileParser

import httpx

from app.core.config import settings
from app.core.exceptions import FetchError
from app.core.logging import get_logger

logger = get_logger(__name__)

# Content types we are willing to treat as a job page
_HTML_TYPES = ("text/html", "application/xhtml+xml", "text/plain")


@dataclass
class FetchResult:
    """Result of one live fetch."""

    url: str
    final_url: str
    html: str
    http_status: int
    content_type: Optional[str]
    duration_ms: int


class HtmlFetcher:
    """
    Fetches job pages with httpx.

    Usage:
        async with HtmlFetcher() as fetcher:
            result = await fetcher.fetch(url)

    An existing client can be injected (tests pass one built on
    httpx.MockTransport); the fetcher then leaves its lifecycle to the caller.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
    ):
        self.timeout = timeout or settings.scrape_timeout_seconds
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self) -> "HtmlFetcher":
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={
                    "User-Agent": settings.scrape_user_agent,
                    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
                    "Accept-Language": "en-US,en;q=0.9",
                },
                follow_redirects=True,
            )
            self._owns_client = True
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def fetch(self, url: str) -> FetchResult:
        """GET `url`; only a 2xx response with an HTML-ish, non-empty body succeeds."""
        if self._client is None:
            raise RuntimeError("HtmlFetcher must be used as an async context manager")

        start = time.monotonic()
        try:
            response = await self._client.get(url, timeout=self.timeout)
        except httpx.TimeoutException as exc:
            logger.warning("fetch_timeout", url=url, timeout=self.timeout)
            raise FetchError(f"Request timeout: {exc}") from exc
        except httpx.HTTPError as exc:
            logger.warning("fetch_transport_error", url=url, error=str(exc))
            raise FetchError(f"Request failed: {exc}") from exc

        duration_ms = int((time.monotonic() - start) * 1000)

        if not response.is_success:
            logger.warning("fetch_http_error", url=url, http_status=response.status_code)
            raise FetchError(
                f"HTTP {response.status_code}: Failed to fetch HTML",
                http_status=response.status_code,
            )

        content_type = response.headers.get("content-type")
        if content_type and not content_type.lower().startswith(_HTML_TYPES):
            raise FetchError(
                f"Unsupported content type: {content_type}",
                http_status=response.status_code,
            )

        html = response.text
        if not html or not html.strip():
            raise FetchError("Empty response body", http_status=response.status_code)

        logger.info(
            "fetch_succeeded",
            url=url,
            http_status=response.status_code,
            html_size=len(html),
            duration_ms=duration_ms,
        )
        return FetchResult(
            url=url,
            final_url=str(response.url),
            html=html,
            http_status=response.status_code,
            content_type=content_type,
            duration_ms=duration_ms,
        )

    async def is_allowed_by_robots(self, url: str) -> bool:
        """
        Check robots.txt for our user agent.

        A missing or unreachable robots.txt means scraping is allowed.
        """
        if self._client is None:
            raise RuntimeError("HtmlFetcher must be used as an async context manager")

        parsed = urlparse(url)
        robots_url = f"{parsed.scheme}://{parsed.netloc}/robots.txt"
        try:
            response = await self._client.get(robots_url, timeout=self.timeout)
        except httpx.HTTPError as exc:
            logger.info("robots_unreachable", robots_url=robots_url, error=str(exc))
            return True

        if response.status_code >= 400:
            return True

        parser = RobotFileParser()
        parser.parse(response.text.splitlines())
        return parser.can_fetch(settings.scrape_user_agent, url)
