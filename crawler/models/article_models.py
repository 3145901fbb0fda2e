# crawler/models/article_models.py
"""
Article-specific data models.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, List, Dict, Any

from utils.text_utils import compute_content_hash

MAX_TAGS = 10


@dataclass
class ArticleContent:
    """A fetched, classified article ready to be persisted."""
    source_id: str
    source_url: str
    title: str
    body: str
    full_html: Optional[str] = None
    author: Optional[str] = None
    publication_date: Optional[datetime] = None
    language: str = "other"
    category: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    job_id: Optional[str] = None

    def __post_init__(self):
        """Validate content."""
        if not self.title.strip():
            raise ValueError("Article title cannot be empty")
        if not self.body.strip():
            raise ValueError("Article content cannot be empty")
        self.tags = list(dict.fromkeys(self.tags))[:MAX_TAGS]

    @property
    def content_hash(self) -> str:
        """Canonical hash of title and body for cross-source deduplication."""
        return compute_content_hash(self.title, self.body)

    @property
    def body_size(self) -> int:
        return len(self.body.encode('utf-8'))

    @property
    def html_size(self) -> int:
        return len(self.full_html.encode('utf-8')) if self.full_html else 0

    def to_record(self) -> Dict[str, Any]:
        """Flatten into the column mapping used by the content store."""
        return {
            'source_id': self.source_id,
            'source_url': self.source_url,
            'title': self.title,
            'body': self.body,
            'full_html': self.full_html,
            'author': self.author,
            'publication_date': self.publication_date,
            'language': self.language,
            'category': self.category,
            'tags': list(self.tags),
            'content_hash': self.content_hash,
            'body_size': self.body_size,
            'html_size': self.html_size,
            'job_id': self.job_id,
        }
