"""
Relational schema of the pipeline.

Tables:
  - sources: configured feeds and their scraping policy
  - scraping_jobs: one row per triggered job
  - scraping_logs: append-only structured log entries of a job
  - scraped_content: active content items
  - archived_content: compressed copies of evicted content items
"""
import uuid

from sqlalchemy import (
    Column, String, Integer, Float, Text, DateTime, Boolean, LargeBinary, JSON, ForeignKey,
)
from sqlalchemy.orm import declarative_base, relationship

from crawler.interfaces.news_source_interface import DEFAULT_USER_AGENT
from utils.time_utils import utcnow

Base = declarative_base()


def new_id() -> str:
    return str(uuid.uuid4())


class SourceModel(Base):
    """Configured news source."""
    __tablename__ = "sources"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(200), nullable=False, index=True)
    domain = Column(String(255), nullable=False, unique=True)
    feed_url = Column(String(1000), nullable=False)
    default_category = Column(String(100))
    is_active = Column(Boolean, nullable=False, default=True)

    # Scraping policy
    respect_robots = Column(Boolean, nullable=False, default=True)
    delay_ms = Column(Integer, nullable=False, default=1000)
    user_agent = Column(String(300), nullable=False, default=DEFAULT_USER_AGENT)
    timeout_ms = Column(Integer, nullable=False, default=30000)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class JobModel(Base):
    """One execution of the pipeline against a set of sources."""
    __tablename__ = "scraping_jobs"

    id = Column(String(36), primary_key=True, default=new_id)
    status = Column(String(20), nullable=False, default="new", index=True)
    sources_requested = Column(JSON, nullable=False, default=list)
    articles_per_source = Column(Integer, nullable=False, default=3)
    total_articles_scraped = Column(Integer, nullable=False, default=0)
    total_errors = Column(Integer, nullable=False, default=0)
    triggered_at = Column(DateTime, nullable=False, default=utcnow)
    completed_at = Column(DateTime)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    logs = relationship(
        "JobLogModel",
        back_populates="job",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class JobLogModel(Base):
    """Structured, append-only log entry of a job."""
    __tablename__ = "scraping_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_id = Column(String(36), ForeignKey("scraping_jobs.id", ondelete="CASCADE"),
                    nullable=False, index=True)
    source_id = Column(String(36), index=True)
    level = Column(String(10), nullable=False)  # info | warning | error
    message = Column(Text, nullable=False)
    payload = Column(JSON, nullable=False, default=dict)
    timestamp = Column(DateTime, nullable=False, default=utcnow, index=True)

    job = relationship("JobModel", back_populates="logs")


class ContentItemModel(Base):
    """Active content item."""
    __tablename__ = "scraped_content"

    id = Column(String(36), primary_key=True, default=new_id)
    source_id = Column(String(36), nullable=False, index=True)
    job_id = Column(String(36), index=True)
    source_url = Column(String(1000), nullable=False, unique=True)
    title = Column(Text, nullable=False)
    body = Column(Text, nullable=False)
    full_html = Column(Text)
    author = Column(String(300))
    publication_date = Column(DateTime)
    language = Column(String(10), nullable=False, default="other", index=True)
    category = Column(String(100))
    tags = Column(JSON, nullable=False, default=list)
    content_hash = Column(String(64), nullable=False, unique=True)
    processing_status = Column(String(20), nullable=False, default="completed", index=True)
    body_size = Column(Integer, nullable=False, default=0)
    html_size = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)


class ArchiveRecordModel(Base):
    """Compressed, read-only copy of an evicted content item."""
    __tablename__ = "archived_content"

    id = Column(String(36), primary_key=True, default=new_id)
    original_id = Column(String(36), nullable=False, unique=True)
    source_id = Column(String(36), nullable=False, index=True)
    source_url = Column(String(1000), nullable=False, index=True)
    title = Column(Text, nullable=False)
    content_hash = Column(String(64), nullable=False, index=True)
    compressed_body = Column(LargeBinary, nullable=False)
    compressed_html = Column(LargeBinary)
    item_metadata = Column(JSON, nullable=False, default=dict)
    original_size = Column(Integer, nullable=False)
    compressed_size = Column(Integer, nullable=False)
    compression_ratio = Column(Float, nullable=False)
    original_created_at = Column(DateTime)
    archived_at = Column(DateTime, nullable=False, default=utcnow, index=True)
