"""
Shared test configuration and fixtures for Newswire pipeline tests.

Provides an in-memory content store, a scripted fetcher standing in for
HTTP, and builders for feeds and article pages.
"""
import os
import sys
import asyncio
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock

import pytest

# Add project root to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from clients.content_store import ContentStore
from crawler.core.error_handler import ErrorHandler, RetryPolicy
from crawler.core.pipeline_runtime import PipelineRuntime
from crawler.interfaces.news_source_interface import NetworkError
from utils.config.settings import Settings


class FakeFetcher:
    """
    Scripted stand-in for HttpFetcher.

    ``responses`` maps URLs to page text, to an exception instance (raised)
    or to a list of either (consumed one per call). Unknown URLs answer 404.
    """

    def __init__(self, responses: Optional[Dict[str, Any]] = None, delay: float = 0.0):
        self.responses = dict(responses or {})
        self.delay = delay
        self.calls: List[str] = []
        self.active = 0
        self.peak_active = 0

    async def __aenter__(self) -> 'FakeFetcher':
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        return None

    async def fetch_text(self, url: str) -> str:
        self.calls.append(url)
        self.active += 1
        self.peak_active = max(self.peak_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            response = self.responses.get(url)
            if isinstance(response, list):
                response = response.pop(0) if len(response) > 1 else response[0]
            if response is None:
                raise NetworkError(f"HTTP 404 for {url}", status=404)
            if isinstance(response, BaseException):
                raise response
            return response
        finally:
            self.active -= 1

    def calls_to(self, url: str) -> int:
        return self.calls.count(url)


def rss_feed(items: List[Dict[str, str]], title: str = "Test Feed") -> str:
    """Build an RSS 2.0 document from ``{'title', 'link', ...}`` dicts."""
    entries = []
    for item in items:
        entries.append(f"""
            <item>
                <title>{item['title']}</title>
                <link>{item['link']}</link>
                <description>{item.get('description', 'Summary of ' + item['title'])}</description>
                <pubDate>{item.get('pub_date', 'Mon, 15 Jan 2024 12:00:00 GMT')}</pubDate>
                <guid>{item['link']}</guid>
            </item>""")
    return f"""<?xml version="1.0" encoding="UTF-8"?>
    <rss version="2.0">
        <channel>
            <title>{title}</title>
            <link>https://example.com</link>
            <description>Feed used in tests</description>
            {''.join(entries)}
        </channel>
    </rss>"""


def article_page(title: str, paragraphs: List[str], extra_head: str = "") -> str:
    """Build an article page whose body sits in an ``<article>`` element."""
    body = "\n".join(f"<p>{p}</p>" for p in paragraphs)
    return f"""<!DOCTYPE html>
    <html>
    <head><title>{title} | Test News</title>{extra_head}</head>
    <body>
        <header><nav>Home | World | Business</nav></header>
        <article>
            <h1>{title}</h1>
            {body}
        </article>
        <footer>Copyright Test News</footer>
    </body>
    </html>"""


def story_paragraphs(topic: str) -> List[str]:
    """Three distinct English paragraphs about ``topic``."""
    return [
        f"The report on {topic} was published on Monday and it has drawn attention from officials across the region.",
        f"Analysts said that the {topic} developments were expected for some time, and that the impact is still unclear.",
        f"Further updates about {topic} are expected later this week as more information becomes available to the public.",
    ]


class NewsSite:
    """A fake site: one feed plus its article pages, registered on a FakeFetcher."""

    def __init__(self, fetcher: FakeFetcher, domain: str, count: int = 3, prefix: str = "story"):
        self.domain = domain
        self.feed_url = f"https://{domain}/rss.xml"
        self.article_urls = [f"https://{domain}/news/{prefix}-{i}" for i in range(count)]
        items = []
        for i, url in enumerate(self.article_urls):
            title = f"{domain} {prefix} number {i} headline"
            items.append({'title': title, 'link': url})
            fetcher.responses[url] = article_page(title, story_paragraphs(f"{domain} {prefix} {i}"))
        fetcher.responses[self.feed_url] = rss_feed(items, title=domain)

    def source_data(self, **overrides) -> Dict[str, Any]:
        data = {
            'name': self.domain.split('.')[0].title(),
            'feed_url': self.feed_url,
            'domain': self.domain,
            'delay_ms': 0,
            'timeout_ms': 5000,
        }
        data.update(overrides)
        return data


@pytest.fixture
def store():
    """In-memory content store."""
    content_store = ContentStore("sqlite:///:memory:")
    yield content_store
    content_store.close()


@pytest.fixture
def no_sleep():
    return AsyncMock()


@pytest.fixture
def error_handler(no_sleep):
    """ErrorHandler that never actually sleeps between retries."""
    return ErrorHandler(RetryPolicy(max_attempts=3, base_delay=1.0, multiplier=2.0, max_delay=30.0),
                        sleep=no_sleep)


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def test_settings():
    """Settings isolated from the environment."""
    return Settings(
        database_url="sqlite:///:memory:",
        max_concurrent_sources=3,
        default_articles_per_source=3,
        admission_recheck_seconds=0.01,
        seed_sources=False,
    )


@pytest.fixture
def runtime(store, fetcher, error_handler, test_settings):
    """Fully wired pipeline around the in-memory store and fake fetcher."""
    return PipelineRuntime(
        settings=test_settings,
        store=store,
        fetcher_factory=lambda source: fetcher,
        memory_reader=lambda: 50.0,
        error_handler=error_handler,
    )


@pytest.fixture
def add_site(runtime, fetcher):
    """Register a fake site and its source record; returns (site, source)."""
    async def _add(domain: str, count: int = 3, prefix: str = "story", **overrides):
        site = NewsSite(fetcher, domain, count=count, prefix=prefix)
        source = await runtime.registry.create_source(site.source_data(**overrides))
        return site, source
    return _add
