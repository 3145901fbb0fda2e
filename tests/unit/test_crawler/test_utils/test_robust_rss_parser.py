"""
Unit tests for crawler.utils.robust_rss_parser.
"""
import pytest

from conftest import FakeFetcher, rss_feed
from crawler.interfaces.news_source_interface import NetworkError, ParseError, SourceConfig
from crawler.utils.robust_rss_parser import RobustRSSParser

ATOM_FEED = """<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Atom News</title>
  <entry>
    <title>Atom entry headline</title>
    <link href="https://atom-news.com/news/entry-1"/>
    <id>urn:uuid:1</id>
    <updated>2024-02-01T10:00:00Z</updated>
    <summary type="html">&lt;p&gt;Short &lt;b&gt;summary&lt;/b&gt;&lt;/p&gt;</summary>
  </entry>
</feed>"""


class TestRobustRSSParser:

    @pytest.fixture
    def parser(self, error_handler):
        return RobustRSSParser(error_handler)

    @pytest.mark.unit
    def test_feed_order_and_limit(self, parser):
        items = [{'title': f"Headline {i}", 'link': f"https://news.com/a/{i}"} for i in range(5)]

        entries = parser.parse_entries(rss_feed(items), max_entries=3)

        assert [e.url for e in entries] == ["https://news.com/a/0", "https://news.com/a/1", "https://news.com/a/2"]
        assert entries[0].title == "Headline 0"
        assert entries[0].published.isoformat() == "2024-01-15T12:00:00"
        assert entries[0].summary == "Summary of Headline 0"

    @pytest.mark.unit
    def test_links_are_canonicalised(self, parser):
        items = [{'title': "Tracked", 'link': "https://News.com/a/1/?utm_source=rss&amp;id=7#comments"}]

        entries = parser.parse_entries(rss_feed(items), max_entries=5)

        assert entries[0].url == "https://news.com/a/1?id=7"

    @pytest.mark.unit
    def test_atom_feed(self, parser):
        entries = parser.parse_entries(ATOM_FEED, max_entries=5)

        assert len(entries) == 1
        assert entries[0].url == "https://atom-news.com/news/entry-1"
        assert entries[0].summary == "Short summary"

    @pytest.mark.unit
    def test_entries_without_links_are_skipped(self, parser):
        feed = rss_feed([{'title': "No link", 'link': "not-a-url"}, {'title': "Linked", 'link': "https://n.com/x"}])

        entries = parser.parse_entries(feed, max_entries=5)

        assert [e.title for e in entries] == ["Linked"]

    @pytest.mark.unit
    def test_not_a_feed(self, parser):
        with pytest.raises(ParseError):
            parser.parse_entries("<html><body><p>Welcome to our homepage</p></body></html>", max_entries=3)
        with pytest.raises(ParseError):
            parser.parse_entries("", max_entries=3)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_fetch_retries_then_surfaces_network_error(self, parser, no_sleep):
        source = SourceConfig(id="s1", name="Down", domain="down.com", feed_url="https://down.com/rss")
        fetcher = FakeFetcher({source.feed_url: NetworkError("Timed out")})

        with pytest.raises(NetworkError):
            await parser.fetch_entries(fetcher, source, 3)

        assert fetcher.calls_to(source.feed_url) == 3
        assert no_sleep.await_count == 2
