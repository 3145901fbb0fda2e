# crawler/interfaces/news_source_interface.py
"""
Core value objects and the error taxonomy of the ingestion pipeline.

Sources are plain configuration records consumed uniformly by one fetcher;
there is no per-source subclassing.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Dict, Any, List

DEFAULT_USER_AGENT = "NewswirePipeline/1.0 (+https://example.org/bot)"


@dataclass(frozen=True)
class ScrapingPolicy:
    """Per-source politeness and timeout policy."""
    respect_robots: bool = True
    delay_ms: int = 1000
    user_agent: str = DEFAULT_USER_AGENT
    timeout_ms: int = 30000

    def __post_init__(self):
        """Validate policy values."""
        if self.delay_ms < 0:
            raise ValueError("delay_ms must be non-negative")
        if self.timeout_ms <= 0:
            raise ValueError("timeout_ms must be positive")
        if not self.user_agent or not self.user_agent.strip():
            raise ValueError("user_agent cannot be empty")

    @property
    def delay_seconds(self) -> float:
        return self.delay_ms / 1000.0

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000.0


@dataclass(frozen=True)
class SourceConfig:
    """Immutable snapshot of a configured source, taken at job start."""
    id: str
    name: str
    domain: str
    feed_url: str
    policy: ScrapingPolicy = field(default_factory=ScrapingPolicy)
    default_category: Optional[str] = None
    is_active: bool = True

    def __post_init__(self):
        """Validate configuration."""
        if not self.name.strip():
            raise ValueError("Source name cannot be empty")
        if not self.feed_url.strip():
            raise ValueError("Feed URL cannot be empty")

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> 'SourceConfig':
        """Build a snapshot from a stored source record."""
        policy = ScrapingPolicy(
            respect_robots=bool(record.get('respect_robots', True)),
            delay_ms=int(record.get('delay_ms', 1000)),
            user_agent=record.get('user_agent') or DEFAULT_USER_AGENT,
            timeout_ms=int(record.get('timeout_ms', 30000)),
        )
        return cls(
            id=record['id'],
            name=record['name'],
            domain=record['domain'],
            feed_url=record['feed_url'],
            policy=policy,
            default_category=record.get('default_category'),
            is_active=bool(record.get('is_active', True)),
        )


@dataclass(frozen=True)
class FeedEntry:
    """One entry of a parsed feed, in feed order."""
    title: str
    url: str
    published: Optional[datetime] = None
    author: Optional[str] = None
    summary: Optional[str] = None

    def __post_init__(self):
        """Validate required fields."""
        if not self.url.strip():
            raise ValueError("URL cannot be empty")


@dataclass
class ExtractedArticle:
    """Structured content pulled out of an article page."""
    title: str
    body: str
    strategy: str
    author: Optional[str] = None
    published: Optional[datetime] = None
    keywords: List[str] = field(default_factory=list)
    html: Optional[str] = None


# Error taxonomy

class NewsSourceError(Exception):
    """Base exception for pipeline operations."""

    retryable = False

    def __init__(self, message: str, source_name: str = "", cause: Optional[Exception] = None):
        super().__init__(message)
        self.source_name = source_name
        self.cause = cause
        self.attempts = 1

    @property
    def error_type(self) -> str:
        return type(self).__name__


class NetworkError(NewsSourceError):
    """Timeout, connection failure or unexpected HTTP status."""

    def __init__(self, message: str, source_name: str = "", cause: Optional[Exception] = None,
                 status: Optional[int] = None):
        super().__init__(message, source_name, cause)
        self.status = status

    @property
    def retryable(self) -> bool:
        # 4xx responses are final; 429 is a RateLimitError
        return self.status is None or self.status >= 500


class RateLimitError(NewsSourceError):
    """The remote side asked us to slow down (HTTP 429)."""

    retryable = True

    def __init__(self, message: str, source_name: str = "", cause: Optional[Exception] = None,
                 retry_after: Optional[float] = None):
        super().__init__(message, source_name, cause)
        self.retry_after = retry_after


class ParseError(NewsSourceError):
    """Malformed feed or HTML."""
    pass


class ValidationError(NewsSourceError):
    """Missing or invalid required fields."""
    pass


class ResourceError(NewsSourceError):
    """Memory or storage pressure signalled by the resource monitor."""
    pass


class StorageError(NewsSourceError):
    """Exception raised by the content store."""
    pass
