"""
Feed fetching and parsing.

Downloads a source's feed through the retrying error handler and turns
feedparser output into ``FeedEntry`` records in feed order.
"""

from typing import List, Optional

import feedparser
from bs4 import BeautifulSoup
from loguru import logger

from crawler.interfaces.news_source_interface import FeedEntry, ParseError, SourceConfig
from utils.text_utils import canonicalize_url, normalize_whitespace
from utils.time_utils import parse_datetime


class RobustRSSParser:
    """
    RSS/Atom parser tolerant of slightly malformed feeds.

    A feed with parse problems is still accepted as long as feedparser
    recovered entries from it.
    """

    def __init__(self, error_handler):
        """
        Args:
            error_handler: ErrorHandler used to retry the feed download
        """
        self.error_handler = error_handler

    async def fetch_entries(self, fetcher, source: SourceConfig, max_entries: int) -> List[FeedEntry]:
        """
        Fetch and parse a source feed.

        Args:
            fetcher: Object with ``async fetch_text(url)``
            source: Source snapshot
            max_entries: Number of leading entries to return

        Returns:
            Up to ``max_entries`` entries in feed order

        Raises:
            NetworkError/RateLimitError: Retry budget exhausted
            ParseError: Content is not a feed
        """
        logger.info(f"📡 Fetching feed for {source.name}: {source.feed_url}")
        content = await self.error_handler.retry(
            lambda: fetcher.fetch_text(source.feed_url),
            source_name=source.name,
            description=f"feed {source.feed_url}",
        )
        return self.parse_entries(content, max_entries, source.name)

    def parse_entries(self, content: str, max_entries: int, source_name: str = "") -> List[FeedEntry]:
        """Parse feed text into at most ``max_entries`` entries."""
        feed = feedparser.parse(content)

        if getattr(feed, 'bozo', False):
            problem = getattr(feed, 'bozo_exception', 'Unknown error')
            if not feed.entries:
                raise ParseError(f"Malformed feed: {problem}", source_name=source_name)
            logger.warning(f"⚠️ Feed for {source_name} has parsing issues: {problem}")
        elif not feed.entries and not feed.get('version'):
            raise ParseError("Content is not an RSS or Atom feed", source_name=source_name)

        logger.info(f"📄 Found {len(feed.entries)} entries in feed for {source_name}")

        entries: List[FeedEntry] = []
        for raw in feed.entries:
            if len(entries) >= max_entries:
                break
            entry = self._to_entry(raw)
            if entry is None:
                logger.debug(f"Skipping feed entry without link: {raw.get('title', '')[:80]}")
                continue
            entries.append(entry)
        return entries

    def _to_entry(self, raw) -> Optional[FeedEntry]:
        link = canonicalize_url(raw.get('link') or raw.get('id') or '')
        if not link.startswith(('http://', 'https://')):
            return None

        summary = raw.get('summary') or raw.get('description') or ''
        if summary:
            summary = normalize_whitespace(BeautifulSoup(summary, 'html.parser').get_text(' '))

        return FeedEntry(
            title=normalize_whitespace(raw.get('title') or ''),
            url=link,
            published=parse_datetime(raw.get('published_parsed') or raw.get('updated_parsed')
                                     or raw.get('published')),
            author=(raw.get('author') or None),
            summary=summary or None,
        )
