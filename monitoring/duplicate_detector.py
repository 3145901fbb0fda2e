"""
Two-stage duplicate detection for the Newswire pipeline.

Stage 1 checks the canonical source URL, stage 2 the canonical content
hash. The store's unique constraints are authoritative; a small LRU of
recently persisted keys short-circuits repeats within one process.
"""
from collections import OrderedDict
from typing import Dict, Any, Optional
from loguru import logger

from utils.text_utils import canonicalize_url

URL_DUPLICATE = "url"
HASH_DUPLICATE = "content_hash"
DEFAULT_CACHE_SIZE = 50000


class DuplicateDetector:
    """URL-then-content-hash duplicate detector backed by the content store."""

    def __init__(self, store, max_cached: Optional[int] = None):
        """
        Initialize duplicate detector.

        Args:
            store: ContentStore answering ``url_exists`` / ``hash_exists``
            max_cached: Maximum recently persisted keys to remember (default: 50000)
        """
        self.store = store
        self.max_cached = max_cached or DEFAULT_CACHE_SIZE
        self._recent: "OrderedDict[str, bool]" = OrderedDict()

        # Statistics
        self.total_checks = 0
        self.url_duplicates = 0
        self.hash_duplicates = 0
        self.cache_hits = 0

        logger.info(f"Duplicate Detector initialized (max cached keys: {self.max_cached})")

    def _cached(self, key: str) -> bool:
        if key in self._recent:
            self._recent.move_to_end(key)
            self.cache_hits += 1
            return True
        return False

    def _cache(self, key: str) -> None:
        self._recent[key] = True
        self._recent.move_to_end(key)
        while len(self._recent) > self.max_cached:
            self._recent.popitem(last=False)

    async def is_known_url(self, source_url: str) -> bool:
        """Stage 1: has this canonical URL been stored (active or archived)?"""
        self.total_checks += 1
        url = canonicalize_url(source_url)
        if self._cached(f"url:{url}") or await self.store.url_exists(url):
            self.url_duplicates += 1
            logger.debug(f"Duplicate URL detected: {url[:100]}")
            return True
        return False

    async def is_known_content(self, content_hash: str) -> bool:
        """Stage 2: does stored content already normalise to this hash?"""
        if self._cached(f"hash:{content_hash}") or await self.store.hash_exists(content_hash):
            self.hash_duplicates += 1
            logger.debug(f"Duplicate content hash detected: {content_hash[:12]}")
            return True
        return False

    def remember(self, source_url: str, content_hash: str) -> None:
        """Record keys of an item that was just persisted."""
        self._cache(f"url:{canonicalize_url(source_url)}")
        self._cache(f"hash:{content_hash}")

    def record_race_loss(self) -> None:
        """Count an insert rejected by the store's unique constraints."""
        self.hash_duplicates += 1

    def get_statistics(self) -> Dict[str, Any]:
        duplicates = self.url_duplicates + self.hash_duplicates
        duplicate_rate = (duplicates / self.total_checks * 100) if self.total_checks > 0 else 0
        return {
            'cached_keys': len(self._recent),
            'max_cache_size': self.max_cached,
            'cache_hits': self.cache_hits,
            'total_checks': self.total_checks,
            'url_duplicates': self.url_duplicates,
            'hash_duplicates': self.hash_duplicates,
            'duplicates_found': duplicates,
            'duplicate_rate_percent': f"{duplicate_rate:.1f}%",
        }

    def log_statistics(self) -> None:
        """Log current detector statistics."""
        stats = self.get_statistics()
        logger.info("🔍 Duplicate Detector Statistics:")
        logger.info(f"  🔗 Keys cached: {stats['cached_keys']}/{stats['max_cache_size']}")
        logger.info(f"  📊 Total checks: {stats['total_checks']}")
        logger.info(f"  ⏭️ Duplicates found: {stats['duplicates_found']} ({stats['duplicate_rate_percent']})")

    def clear_cache(self) -> None:
        """Forget cached keys and reset statistics."""
        self._recent.clear()
        self.total_checks = 0
        self.url_duplicates = 0
        self.hash_duplicates = 0
        self.cache_hits = 0
        logger.info("Duplicate cache cleared")
