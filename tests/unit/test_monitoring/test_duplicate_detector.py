"""
Unit tests for monitoring.duplicate_detector module.

Tests the two duplicate stages (URL, then content hash), the archive
lookups and the recent-key cache.
"""
import pytest

from crawler.models.article_models import ArticleContent
from monitoring.duplicate_detector import DEFAULT_CACHE_SIZE, DuplicateDetector
from utils.text_utils import compute_content_hash

BODY = ("Gold prices are expected to continue their bullish momentum this week, "
        "analysts said on Monday, as investors look for safety in uncertain markets.")


def make_article(url, title="Gold Price Forecast: Bullish Momentum Expected", body=BODY):
    return ArticleContent(source_id="src-1", source_url=url, title=title, body=body)


class TestDuplicateDetector:
    """Test cases for DuplicateDetector class."""

    @pytest.fixture
    def detector(self, store):
        return DuplicateDetector(store, max_cached=100)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_new_article_is_not_duplicate(self, detector):
        article = make_article("https://example.com/gold-forecast")

        assert not await detector.is_known_url(article.source_url)
        assert not await detector.is_known_content(article.content_hash)
        assert detector.get_statistics()['duplicates_found'] == 0

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_stored_url_is_duplicate(self, detector, store):
        article = make_article("https://example.com/gold-forecast")
        await store.insert_content(article.to_record())

        assert await detector.is_known_url("https://EXAMPLE.com/gold-forecast/?utm_campaign=daily")
        assert detector.url_duplicates == 1
        assert detector.hash_duplicates == 0

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_same_content_new_url_is_duplicate(self, detector, store):
        await store.insert_content(make_article("https://wire.com/a").to_record())

        # Typography and spacing differences do not change the canonical hash
        title = "Gold price forecast — bullish momentum expected"
        body = BODY.replace("Monday,", "Monday ,").replace("markets.", "markets!")

        assert not await detector.is_known_url("https://mirror.com/b")
        assert await detector.is_known_content(compute_content_hash(title, body))
        assert detector.hash_duplicates == 1

    @pytest.mark.unit
    def test_default_cache_size(self, store):
        assert DuplicateDetector(store).max_cached == DEFAULT_CACHE_SIZE

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_archived_content_still_counts(self, detector, store):
        stored = await store.insert_content(make_article("https://example.com/old").to_record())
        await store.archive_item(stored['id'])
        assert await store.count_content() == 0

        assert await detector.is_known_url("https://example.com/old")
        assert await detector.is_known_content(stored['content_hash'])

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_remembered_keys_short_circuit_store(self, detector):
        article = make_article("https://example.com/fresh")
        detector.remember(article.source_url, article.content_hash)

        assert await detector.is_known_url("https://example.com/fresh#top")
        assert await detector.is_known_content(compute_content_hash(article.title, article.body))
        assert detector.cache_hits == 2

    @pytest.mark.unit
    def test_cache_is_bounded(self, store):
        detector = DuplicateDetector(store, max_cached=4)
        for i in range(10):
            detector.remember(f"https://example.com/{i}", f"hash-{i}")

        stats = detector.get_statistics()
        assert stats['cached_keys'] == 4
        assert stats['max_cache_size'] == 4

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_statistics_and_reset(self, detector, store):
        await store.insert_content(make_article("https://example.com/x").to_record())
        await detector.is_known_url("https://example.com/x")
        await detector.is_known_url("https://example.com/y")
        detector.record_race_loss()

        stats = detector.get_statistics()
        assert stats['total_checks'] == 2
        assert stats['duplicates_found'] == 2
        assert stats['duplicate_rate_percent'] == "100.0%"

        detector.clear_cache()
        assert detector.get_statistics()['total_checks'] == 0
