# crawler/interfaces/__init__.py
"""
Interfaces package for the Newswire pipeline.
Contains the value objects and exceptions shared by every component.
"""

from .news_source_interface import (
    # Data models
    ScrapingPolicy,
    SourceConfig,
    FeedEntry,
    ExtractedArticle,
    DEFAULT_USER_AGENT,

    # Exceptions
    NewsSourceError,
    NetworkError,
    RateLimitError,
    ParseError,
    ValidationError,
    ResourceError,
    StorageError,
)

__all__ = [
    'ScrapingPolicy',
    'SourceConfig',
    'FeedEntry',
    'ExtractedArticle',
    'DEFAULT_USER_AGENT',

    'NewsSourceError',
    'NetworkError',
    'RateLimitError',
    'ParseError',
    'ValidationError',
    'ResourceError',
    'StorageError',
]
