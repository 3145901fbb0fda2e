"""
HTTP fetching for one source pipeline.

One aiohttp session per pipeline, configured from the source's policy
(user agent and timeout). HTTP failures are translated into the pipeline's
error taxonomy.
"""
from typing import Optional

import asyncio
import aiohttp
from loguru import logger

from crawler.interfaces.news_source_interface import (
    ScrapingPolicy, NetworkError, RateLimitError,
)

ACCEPT_HEADER = 'text/html,application/xhtml+xml,application/xml;q=0.9,application/rss+xml;q=0.9,*/*;q=0.8'


def _retry_after_seconds(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


class HttpFetcher:
    """Async HTTP client bound to one source's scraping policy."""

    def __init__(self, policy: ScrapingPolicy, source_name: str = ""):
        """
        Args:
            policy: Scraping policy supplying user agent and timeout
            source_name: Used in error messages and logs
        """
        self.policy = policy
        self.source_name = source_name
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> 'HttpFetcher':
        self._session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.policy.timeout_seconds),
            headers={'User-Agent': self.policy.user_agent, 'Accept': ACCEPT_HEADER},
        )
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def fetch_text(self, url: str) -> str:
        """
        GET a URL and return its decoded body.

        Raises:
            RateLimitError: HTTP 429
            NetworkError: Timeout, connection failure or non-2xx status
        """
        if self._session is None:
            raise RuntimeError("HttpFetcher used outside 'async with'")

        try:
            async with self._session.get(url, allow_redirects=True) as response:
                if response.status == 429:
                    raise RateLimitError(
                        f"HTTP 429 for {url}",
                        source_name=self.source_name,
                        retry_after=_retry_after_seconds(response.headers.get('Retry-After')),
                    )
                if response.status >= 400:
                    raise NetworkError(
                        f"HTTP {response.status} for {url}",
                        source_name=self.source_name,
                        status=response.status,
                    )
                text = await response.text(errors='replace')
                logger.debug(f"📥 {url} -> {response.status} ({len(text)} chars)")
                return text
        except asyncio.TimeoutError as e:
            raise NetworkError(
                f"Timed out after {self.policy.timeout_seconds:.1f}s fetching {url}",
                source_name=self.source_name,
                cause=e,
            ) from e
        except aiohttp.ClientError as e:
            raise NetworkError(f"Connection error fetching {url}: {e}",
                               source_name=self.source_name, cause=e) from e
