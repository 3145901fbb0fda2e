"""Robots.txt compliance checking.

Robots files are fetched once per origin and cached for the lifetime of
the checker (one source pipeline). A missing or unreachable robots file
allows everything; 401/403 on the robots file disallows everything.
"""
from typing import Dict, Optional
from urllib.parse import urlsplit
from urllib.robotparser import RobotFileParser

from loguru import logger

from crawler.interfaces.news_source_interface import NetworkError, NewsSourceError


class RobotsChecker:
    """Answers whether a URL may be fetched under a user agent."""

    def __init__(self, fetcher, user_agent: str):
        """
        Args:
            fetcher: Object with ``async fetch_text(url)``
            user_agent: User agent matched against robots groups
        """
        self.fetcher = fetcher
        self.user_agent = user_agent
        self._parsers: Dict[str, RobotFileParser] = {}

    @staticmethod
    def _origin(url: str) -> str:
        parts = urlsplit(url)
        return f"{parts.scheme}://{parts.netloc}"

    async def _parser_for(self, url: str) -> RobotFileParser:
        origin = self._origin(url)
        if origin in self._parsers:
            return self._parsers[origin]

        parser = RobotFileParser()
        robots_url = f"{origin}/robots.txt"
        try:
            content = await self.fetcher.fetch_text(robots_url)
            parser.parse(content.splitlines())
        except NetworkError as e:
            if e.status in (401, 403):
                logger.info(f"🤖 {robots_url} returned {e.status}, treating site as disallowed")
                parser.disallow_all = True
            else:
                logger.debug(f"🤖 No usable robots.txt at {robots_url}: {e}")
                parser.allow_all = True
        except NewsSourceError as e:
            logger.debug(f"🤖 No usable robots.txt at {robots_url}: {e}")
            parser.allow_all = True

        self._parsers[origin] = parser
        return parser

    async def is_allowed(self, url: str) -> bool:
        parser = await self._parser_for(url)
        return parser.can_fetch(self.user_agent, url)

    async def crawl_delay(self, url: str) -> Optional[float]:
        """Crawl-delay declared for our user agent, if any."""
        parser = await self._parser_for(url)
        delay = parser.crawl_delay(self.user_agent)
        return float(delay) if delay is not None else None
