"""
Rate limiter controlling the request frequency against one source.
"""

import asyncio
import time
from typing import Optional

from crawler.interfaces.news_source_interface import ScrapingPolicy


class RateLimiter:
    """Enforces a minimum delay between consecutive requests."""

    def __init__(self, delay_seconds: float = 1.0):
        """Initialize rate limiter.

        Args:
            delay_seconds: Minimum delay between requests
        """
        self.delay_seconds = max(0.0, delay_seconds)
        self.last_request_time: Optional[float] = None

    @classmethod
    def from_policy(cls, policy: ScrapingPolicy, crawl_delay: Optional[float] = None) -> 'RateLimiter':
        """Build from a source policy; a robots.txt Crawl-delay can only lengthen the delay."""
        delay = policy.delay_seconds
        if crawl_delay:
            delay = max(delay, crawl_delay)
        return cls(delay)

    async def wait(self) -> float:
        """Wait until the next request may go out.

        Returns:
            Seconds actually slept
        """
        waited = 0.0
        if self.last_request_time is not None:
            elapsed = time.monotonic() - self.last_request_time
            if elapsed < self.delay_seconds:
                waited = self.delay_seconds - elapsed
                await asyncio.sleep(waited)

        self.last_request_time = time.monotonic()
        return waited
