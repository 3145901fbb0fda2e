# crawler/factories/source_registry.py
"""
Source registry: administrative CRUD over configured sources and the
read-only snapshot the pipeline takes at job start.
"""
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

from loguru import logger

from crawler.core.error_handler import ErrorHandler
from crawler.factories.config_loader import SourceConfigLoader, validate_source_data
from crawler.interfaces.news_source_interface import SourceConfig
from crawler.utils.http_fetcher import HttpFetcher
from crawler.utils.robust_rss_parser import RobustRSSParser
from utils.time_utils import isoformat, utcnow

FEED_TEST_MAX_ITEMS = 1000


class SourceRegistry:
    """Holds configured sources and their scraping policy."""

    def __init__(self, store, fetcher_factory: Optional[Callable[[SourceConfig], object]] = None,
                 error_handler: Optional[ErrorHandler] = None):
        """
        Args:
            store: ContentStore persisting source records
            fetcher_factory: Builds the fetcher used by feed checks (default: HttpFetcher)
            error_handler: Classifies feed check failures
        """
        self.store = store
        self.fetcher_factory = fetcher_factory or (lambda source: HttpFetcher(source.policy, source.name))
        self.error_handler = error_handler or ErrorHandler()
        self.rss_parser = RobustRSSParser(self.error_handler)

    async def create_source(self, data: Dict[str, Any]) -> Dict[str, Any]:
        record = validate_source_data(data)
        source = await self.store.create_source(record)
        logger.info(f"➕ Source created: {source['name']} ({source['domain']})")
        return source

    async def update_source(self, source_id: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        record = validate_source_data(changes, partial=True)
        source = await self.store.update_source(source_id, record)
        if source:
            logger.info(f"✏️ Source updated: {source['name']}")
        return source

    async def delete_source(self, source_id: str) -> bool:
        deleted = await self.store.delete_source(source_id)
        if deleted:
            logger.info(f"🗑️ Source deleted: {source_id}")
        return deleted

    async def get_source(self, identifier: str) -> Optional[Dict[str, Any]]:
        return await self.store.find_source(identifier)

    async def list_sources(self, active_only: bool = False) -> List[Dict[str, Any]]:
        return await self.store.list_sources(active_only=active_only)

    async def import_sources(self, config_path: str) -> Dict[str, int]:
        """
        Upsert sources from a YAML file, matching existing rows by domain.

        Returns:
            Counts of created and updated sources
        """
        created = updated = 0
        for record in SourceConfigLoader.load_from_yaml(config_path):
            existing = await self.store.find_source(record['domain'])
            if existing:
                await self.store.update_source(existing['id'], record)
                updated += 1
            else:
                await self.store.create_source(record)
                created += 1
        logger.info(f"📥 Imported sources from {config_path}: {created} created, {updated} updated")
        return {'created': created, 'updated': updated}

    async def resolve_active(self, identifiers: List[str]) -> Tuple[List[SourceConfig], List[str]]:
        """
        Snapshot the active sources named by ``identifiers``.

        Identifiers may be ids, domains or names; duplicates collapse to the
        first occurrence.

        Returns:
            Tuple of (source snapshots in request order, rejected identifiers)
        """
        resolved: List[SourceConfig] = []
        rejected: List[str] = []
        seen = set()
        for identifier in identifiers or []:
            if not isinstance(identifier, str) or not identifier.strip():
                rejected.append(str(identifier))
                continue
            record = await self.store.find_source(identifier.strip())
            if record is None or not record['is_active']:
                rejected.append(identifier)
                continue
            if record['id'] in seen:
                continue
            seen.add(record['id'])
            resolved.append(SourceConfig.from_record(record))
        return resolved, rejected

    async def test_source(self, source_id: str) -> Optional[Dict[str, Any]]:
        """
        Fetch and parse a source's feed once, without retries or persistence.

        Returns:
            Validation result, or None when the source does not exist
        """
        record = await self.store.find_source(source_id)
        if record is None:
            return None

        source = SourceConfig.from_record(record)
        errors: List[str] = []
        warnings: List[str] = []
        item_count = None
        started = time.monotonic()

        if not source.is_active:
            warnings.append("Source is inactive and will be skipped by jobs")
        try:
            async with self.fetcher_factory(source) as fetcher:
                content = await fetcher.fetch_text(source.feed_url)
            entries = self.rss_parser.parse_entries(content, FEED_TEST_MAX_ITEMS, source.name)
            item_count = len(entries)
            if item_count == 0:
                warnings.append("Feed contains no items")
        except Exception as e:
            error = self.error_handler.classify(e, source.name)
            errors.append(f"{error.error_type}: {error}")

        result = {
            'source_id': source.id,
            'source_name': source.name,
            'feed_url': source.feed_url,
            'is_valid': not errors,
            'errors': errors,
            'warnings': warnings,
            'item_count': item_count,
            'response_time_ms': int((time.monotonic() - started) * 1000),
            'checked_at': isoformat(utcnow()),
        }
        icon = "✅" if result['is_valid'] else "❌"
        logger.info(f"{icon} Feed check for {source.name}: {item_count or 0} items, "
                    f"{len(errors)} errors, {len(warnings)} warnings")
        return result

    async def get_source_health(self, source_id: str, recent_jobs: int = 20) -> Optional[Dict[str, Any]]:
        """Health of a source over its most recent finished jobs, or None if unknown."""
        record = await self.store.find_source(source_id)
        if record is None:
            return None
        health = await self.store.get_source_health(record['id'], recent_jobs=recent_jobs)
        health.update({'source_name': record['name'], 'is_active': record['is_active']})
        return health
