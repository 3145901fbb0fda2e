# crawler/models/__init__.py
"""
Data models for the Newswire pipeline.
"""

from .source_models import (
    ProcessingStatus,
    SourceOutcome
)

from .job_models import (
    JobStatus,
    LogLevel,
    JobContext,
    TERMINAL_STATUSES
)

from .article_models import (
    ArticleContent,
    MAX_TAGS
)

__all__ = [
    # Source models
    'ProcessingStatus',
    'SourceOutcome',

    # Job models
    'JobStatus',
    'LogLevel',
    'JobContext',
    'TERMINAL_STATUSES',

    # Article models
    'ArticleContent',
    'MAX_TAGS'
]
