# crawler/models/source_models.py
"""
Data models for per-source processing results.
"""
from dataclasses import dataclass
from typing import Optional, Dict, Any
from enum import Enum


class ProcessingStatus(Enum):
    """Status of a stored content item."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class SourceOutcome:
    """Result of one source pipeline inside a job."""
    source_id: str
    source_name: str
    succeeded: bool
    items_persisted: int = 0
    duplicates_skipped: int = 0
    articles_attempted: int = 0
    articles_failed: int = 0
    error_type: Optional[str] = None
    error_message: Optional[str] = None
    cancelled: bool = False

    @classmethod
    def success(cls, source_id: str, source_name: str, **counts) -> 'SourceOutcome':
        """Build a sourceSucceeded outcome."""
        return cls(source_id=source_id, source_name=source_name, succeeded=True, **counts)

    @classmethod
    def failure(cls, source_id: str, source_name: str, error_type: str,
                error_message: str, **counts) -> 'SourceOutcome':
        """Build a sourceFailed outcome."""
        return cls(
            source_id=source_id,
            source_name=source_name,
            succeeded=False,
            error_type=error_type,
            error_message=error_message,
            **counts
        )

    @property
    def failure_ratio(self) -> float:
        if self.articles_attempted == 0:
            return 0.0
        return self.articles_failed / self.articles_attempted

    def to_dict(self) -> Dict[str, Any]:
        return {
            'source_id': self.source_id,
            'source_name': self.source_name,
            'outcome': 'succeeded' if self.succeeded else 'failed',
            'items_persisted': self.items_persisted,
            'duplicates_skipped': self.duplicates_skipped,
            'articles_attempted': self.articles_attempted,
            'articles_failed': self.articles_failed,
            'error_type': self.error_type,
            'error_message': self.error_message,
            'cancelled': self.cancelled,
        }
