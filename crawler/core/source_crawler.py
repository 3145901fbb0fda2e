"""
Per-source pipeline: feed -> article pages -> extraction -> dedupe ->
classification -> persistence.

One ``SourceCrawler`` serves every source; sources differ only by their
configuration record. The pipeline reports a ``SourceOutcome`` and never
raises for source-level failures.
"""

import asyncio
from typing import Callable, Dict, List, Optional

from loguru import logger

from crawler.core.error_handler import ErrorHandler
from crawler.extractors.article_extractor import extract_article, Strategy
from crawler.extractors.content_classifier import ContentClassifier
from crawler.interfaces.news_source_interface import (
    FeedEntry, ParseError, SourceConfig, ValidationError,
)
from crawler.models.article_models import ArticleContent
from crawler.models.job_models import JobContext, LogLevel
from crawler.models.source_models import SourceOutcome
from crawler.utils.http_fetcher import HttpFetcher
from crawler.utils.rate_limiter import RateLimiter
from crawler.utils.robots import RobotsChecker
from crawler.utils.robust_rss_parser import RobustRSSParser
from monitoring.duplicate_detector import HASH_DUPLICATE, URL_DUPLICATE

MIN_TITLE_LENGTH = 5

ENTRY_PERSISTED = "persisted"
ENTRY_DUPLICATE = "duplicate"
ENTRY_FAILED = "failed"
ENTRY_DISALLOWED = "disallowed"


def default_fetcher_factory(source: SourceConfig) -> HttpFetcher:
    return HttpFetcher(source.policy, source.name)


class SourceCrawler:
    """Runs the ingestion pipeline for one source at a time."""

    def __init__(self, store, duplicate_detector, classifier: Optional[ContentClassifier] = None,
                 error_handler: Optional[ErrorHandler] = None,
                 fetcher_factory: Optional[Callable[[SourceConfig], object]] = None,
                 failure_ratio: float = 1.0,
                 strategies: Optional[List[Strategy]] = None):
        """
        Args:
            store: ContentStore receiving new items
            duplicate_detector: DuplicateDetector consulted before persistence
            classifier: ContentClassifier assigning language/category/tags
            error_handler: ErrorHandler for retries and failure logging
            fetcher_factory: Builds an async-context-manager fetcher for a source
            failure_ratio: Share of failed articles at which the source fails
            strategies: Extraction strategy chain override
        """
        self.store = store
        self.duplicate_detector = duplicate_detector
        self.classifier = classifier or ContentClassifier()
        self.error_handler = error_handler or ErrorHandler()
        self.fetcher_factory = fetcher_factory or default_fetcher_factory
        self.failure_ratio = failure_ratio
        self.strategies = strategies
        self.rss_parser = RobustRSSParser(self.error_handler)

    async def crawl(self, source: SourceConfig, context: JobContext) -> SourceOutcome:
        """
        Run the pipeline for ``source`` under ``context``.

        Returns:
            sourceSucceeded with counts, or sourceFailed with the error class
        """
        stats: Dict[str, int] = {
            'items_persisted': 0,
            'duplicates_skipped': 0,
            'articles_attempted': 0,
            'articles_failed': 0,
        }
        if context.is_cancelled:
            return await self._cancelled(source, context, stats)

        await context.log.info(
            f"Source pipeline started for {source.name}",
            source,
            feed_url=source.feed_url,
            quota=context.articles_per_source,
        )
        last_item_error = None

        try:
            async with self.fetcher_factory(source) as fetcher:
                entries = await self.rss_parser.fetch_entries(fetcher, source, context.articles_per_source)
                await context.log.info(
                    f"Feed parsed for {source.name}: {len(entries)} entries selected",
                    source,
                    entries=len(entries),
                )

                robots = None
                crawl_delay = None
                if source.policy.respect_robots:
                    robots = RobotsChecker(fetcher, source.policy.user_agent)
                    crawl_delay = await robots.crawl_delay(source.feed_url)
                rate_limiter = RateLimiter.from_policy(source.policy, crawl_delay)
                await rate_limiter.wait()

                for entry in entries:
                    if context.is_cancelled:
                        return await self._cancelled(source, context, stats)

                    result, error = await self._process_entry(
                        entry, source, context, fetcher, robots, rate_limiter, stats
                    )
                    if result == ENTRY_PERSISTED:
                        stats['items_persisted'] += 1
                    elif result == ENTRY_DUPLICATE:
                        stats['duplicates_skipped'] += 1
                    elif result == ENTRY_FAILED:
                        stats['articles_failed'] += 1
                        last_item_error = error

        except asyncio.CancelledError:
            raise
        except Exception as e:
            error = await self.error_handler.record(context.log, e, source, level=LogLevel.ERROR, **stats)
            return SourceOutcome.failure(source.id, source.name, error.error_type, str(error), **stats)

        outcome = SourceOutcome.success(source.id, source.name, **stats)
        if outcome.articles_attempted and outcome.failure_ratio >= self.failure_ratio:
            message = (f"Source {source.name} failed: {outcome.articles_failed} of "
                       f"{outcome.articles_attempted} articles failed")
            error_type = last_item_error.error_type if last_item_error else ParseError.__name__
            await context.log.record_error(LogLevel.ERROR, message, source, error_type=error_type, **stats)
            return SourceOutcome.failure(source.id, source.name, error_type, message, **stats)

        await context.log.info(
            f"Source {source.name} completed: {stats['items_persisted']} new, "
            f"{stats['duplicates_skipped']} duplicates, {stats['articles_failed']} failed",
            source,
            **stats
        )
        return outcome

    async def _process_entry(self, entry: FeedEntry, source: SourceConfig, context: JobContext,
                             fetcher, robots: Optional[RobotsChecker], rate_limiter: RateLimiter,
                             stats: Dict[str, int]):
        """Returns (result, error) for one feed entry; source-fatal errors propagate."""
        if await self.duplicate_detector.is_known_url(entry.url):
            await context.log.info("Duplicate skipped (source URL already stored)", source,
                                   source_url=entry.url, reason=URL_DUPLICATE)
            return ENTRY_DUPLICATE, None

        if robots is not None and not await robots.is_allowed(entry.url):
            await context.log.info("Skipped article disallowed by robots.txt", source, source_url=entry.url)
            return ENTRY_DISALLOWED, None

        stats['articles_attempted'] += 1
        try:
            await rate_limiter.wait()
            html = await self.error_handler.retry(
                lambda: fetcher.fetch_text(entry.url),
                source_name=source.name,
                description=f"article {entry.url}",
            )
            article = self._build_article(entry, html, source, context)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if self.error_handler.is_source_fatal(e):
                raise
            error = await self.error_handler.record(context.log, e, source, source_url=entry.url)
            return ENTRY_FAILED, error

        if await self.duplicate_detector.is_known_content(article.content_hash):
            await context.log.info("Duplicate skipped (content hash already stored)", source,
                                   source_url=article.source_url, reason=HASH_DUPLICATE)
            return ENTRY_DUPLICATE, None

        stored = await self.store.insert_content(article.to_record())
        if stored is None:
            self.duplicate_detector.record_race_loss()
            await context.log.info("Duplicate skipped (lost concurrent insert)", source,
                                   source_url=article.source_url, reason="constraint")
            return ENTRY_DUPLICATE, None

        self.duplicate_detector.remember(article.source_url, article.content_hash)
        logger.info(f"✅ Stored '{article.title[:70]}' from {source.name} ({article.language})")
        return ENTRY_PERSISTED, None

    def _build_article(self, entry: FeedEntry, html: str, source: SourceConfig,
                       context: JobContext) -> ArticleContent:
        extracted = extract_article(html, self.strategies)
        if extracted is None:
            raise ParseError(f"No extraction strategy produced content for {entry.url}",
                             source_name=source.name)

        title = extracted.title or entry.title
        if len(title.strip()) < MIN_TITLE_LENGTH:
            raise ValidationError(f"Missing or too short title for {entry.url}", source_name=source.name)

        classification = self.classifier.classify(
            title, extracted.body, entry.url, source.default_category, extracted.keywords
        )
        return ArticleContent(
            source_id=source.id,
            source_url=entry.url,
            title=title,
            body=extracted.body,
            full_html=html,
            author=extracted.author or entry.author,
            publication_date=extracted.published or entry.published,
            language=classification.language,
            category=classification.category,
            tags=classification.tags,
            job_id=context.job_id,
        )

    async def _cancelled(self, source: SourceConfig, context: JobContext,
                         stats: Dict[str, int]) -> SourceOutcome:
        reason = context.cancel_reason or "cancelled"
        await context.log.warning(f"Source pipeline for {source.name} stopped: {reason}", source, **stats)
        outcome = SourceOutcome.failure(source.id, source.name, "Cancelled", reason, **stats)
        outcome.cancelled = True
        return outcome
