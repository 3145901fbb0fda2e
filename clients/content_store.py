"""
Relational content store for the Newswire pipeline.

Wraps a synchronous SQLAlchemy engine behind async methods. All database
work runs on a single worker thread, so every call is a suspension point
for the event loop while transactions never interleave on a shared
connection. Uniqueness of ``source_url`` and ``content_hash`` is enforced
by the schema; losing an insert race surfaces as a duplicate, not an error.
"""
import asyncio
import gzip
import math
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional

from loguru import logger
from sqlalchemy import create_engine, event, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from clients.db_models import (
    Base, SourceModel, JobModel, JobLogModel, ContentItemModel, ArchiveRecordModel, new_id,
)
from crawler.interfaces.news_source_interface import StorageError, ValidationError
from crawler.models.job_models import JobStatus, LogLevel, TERMINAL_STATUSES
from utils.time_utils import utcnow, isoformat

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 200
HEALTHY_SUCCESS_RATE = 50.0

SOURCE_FIELDS = (
    'name', 'domain', 'feed_url', 'default_category', 'is_active',
    'respect_robots', 'delay_ms', 'user_agent', 'timeout_ms',
)
JOB_MUTABLE_FIELDS = (
    'status', 'sources_requested', 'total_articles_scraped', 'total_errors', 'completed_at',
)


class JobStateError(StorageError):
    """Attempt to mutate a job that already reached a terminal state."""
    pass


def _page_bounds(page: int, page_size: int) -> tuple:
    page = max(1, int(page or 1))
    page_size = max(1, min(int(page_size or DEFAULT_PAGE_SIZE), MAX_PAGE_SIZE))
    return page, page_size


def _paged(items: List[Dict[str, Any]], total: int, page: int, page_size: int) -> Dict[str, Any]:
    return {
        'items': items,
        'total': total,
        'page': page,
        'page_size': page_size,
        'total_pages': math.ceil(total / page_size) if total else 0,
    }


class ContentStore:
    """Persistence and query layer for sources, jobs, logs, content and archives."""

    def __init__(self, database_url: str = "sqlite:///:memory:", echo: bool = False):
        """
        Initialize the store and create missing tables.

        Args:
            database_url: Any SQLAlchemy URL; in-memory SQLite shares one connection
            echo: Log SQL statements
        """
        self.database_url = database_url
        engine_kwargs: Dict[str, Any] = {'echo': echo, 'future': True}
        if database_url.startswith('sqlite'):
            engine_kwargs['connect_args'] = {'check_same_thread': False}
            if ':memory:' in database_url or database_url in ('sqlite://', 'sqlite:///'):
                engine_kwargs['poolclass'] = StaticPool

        self.engine = create_engine(database_url, **engine_kwargs)
        if database_url.startswith('sqlite'):
            event.listen(self.engine, 'connect', _enable_sqlite_foreign_keys)

        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix='content-store')
        Base.metadata.create_all(self.engine)
        logger.info(f"🗄️ Content store ready ({self.engine.url.render_as_string(hide_password=True)})")

    @contextmanager
    def get_session(self) -> Session:
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    async def _run(self, fn, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, fn, *args)

    def close(self) -> None:
        """Release the worker thread and the connection pool."""
        self._executor.shutdown(wait=True)
        self.engine.dispose()

    # ── Sources ──────────────────────────────────────────────────────

    async def create_source(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return await self._run(self._create_source, data)

    def _create_source(self, data: Dict[str, Any]) -> Dict[str, Any]:
        values = {k: data[k] for k in SOURCE_FIELDS if k in data and data[k] is not None}
        try:
            with self.get_session() as session:
                source = SourceModel(id=data.get('id') or new_id(), **values)
                session.add(source)
                session.flush()
                return _source_to_dict(source)
        except IntegrityError as e:
            raise ValidationError(f"Source with domain '{values.get('domain')}' already exists", cause=e)

    async def update_source(self, source_id: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return await self._run(self._update_source, source_id, changes)

    def _update_source(self, source_id: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        try:
            with self.get_session() as session:
                source = session.get(SourceModel, source_id)
                if source is None:
                    return None
                for key, value in changes.items():
                    if key in SOURCE_FIELDS:
                        setattr(source, key, value)
                session.flush()
                return _source_to_dict(source)
        except IntegrityError as e:
            raise ValidationError(f"Source with domain '{changes.get('domain')}' already exists", cause=e)

    async def delete_source(self, source_id: str) -> bool:
        return await self._run(self._delete_source, source_id)

    def _delete_source(self, source_id: str) -> bool:
        with self.get_session() as session:
            deleted = session.query(SourceModel).filter_by(id=source_id).delete()
            return deleted > 0

    async def get_source(self, source_id: str) -> Optional[Dict[str, Any]]:
        return await self._run(self._get_source, source_id)

    def _get_source(self, source_id: str) -> Optional[Dict[str, Any]]:
        with self.get_session() as session:
            source = session.get(SourceModel, source_id)
            return _source_to_dict(source) if source else None

    async def find_source(self, identifier: str) -> Optional[Dict[str, Any]]:
        """Look a source up by id, then domain, then name."""
        return await self._run(self._find_source, identifier)

    def _find_source(self, identifier: str) -> Optional[Dict[str, Any]]:
        with self.get_session() as session:
            source = session.get(SourceModel, identifier)
            if source is None:
                source = session.query(SourceModel).filter(
                    or_(SourceModel.domain == identifier.lower(), SourceModel.name == identifier)
                ).order_by(SourceModel.created_at).first()
            return _source_to_dict(source) if source else None

    async def list_sources(self, active_only: bool = False) -> List[Dict[str, Any]]:
        return await self._run(self._list_sources, active_only)

    def _list_sources(self, active_only: bool) -> List[Dict[str, Any]]:
        with self.get_session() as session:
            query = session.query(SourceModel)
            if active_only:
                query = query.filter(SourceModel.is_active.is_(True))
            return [_source_to_dict(s) for s in query.order_by(SourceModel.name).all()]

    # ── Jobs ─────────────────────────────────────────────────────────

    async def create_job(self, sources: List[str], articles_per_source: int) -> Dict[str, Any]:
        return await self._run(self._create_job, sources, articles_per_source)

    def _create_job(self, sources: List[str], articles_per_source: int) -> Dict[str, Any]:
        now = utcnow()
        with self.get_session() as session:
            job = JobModel(
                id=new_id(),
                status=JobStatus.NEW.value,
                sources_requested=list(sources),
                articles_per_source=articles_per_source,
                triggered_at=now,
                created_at=now,
                updated_at=now,
            )
            session.add(job)
            session.flush()
            return _job_to_dict(job)

    async def update_job(self, job_id: str, **changes) -> Dict[str, Any]:
        """Apply changes to a non-terminal job.

        Raises:
            JobStateError: If the job is missing or already terminal
        """
        return await self._run(self._update_job, job_id, changes)

    def _update_job(self, job_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        with self.get_session() as session:
            job = session.get(JobModel, job_id)
            if job is None:
                raise JobStateError(f"Job {job_id} not found")
            if job.status in TERMINAL_STATUSES:
                raise JobStateError(f"Job {job_id} is already {job.status}")
            for key, value in changes.items():
                if key not in JOB_MUTABLE_FIELDS:
                    raise JobStateError(f"Field '{key}' of a job cannot be changed")
                if key == 'status' and isinstance(value, JobStatus):
                    value = value.value
                setattr(job, key, value)
            job.updated_at = utcnow()
            session.flush()
            return _job_to_dict(job)

    async def get_job(self, job_id: str) -> Optional[Dict[str, Any]]:
        return await self._run(self._get_job, job_id)

    def _get_job(self, job_id: str) -> Optional[Dict[str, Any]]:
        with self.get_session() as session:
            job = session.get(JobModel, job_id)
            return _job_to_dict(job) if job else None

    async def list_jobs(self, status: Optional[str] = None, page: int = 1,
                        page_size: int = DEFAULT_PAGE_SIZE) -> Dict[str, Any]:
        return await self._run(self._list_jobs, status, page, page_size)

    def _list_jobs(self, status: Optional[str], page: int, page_size: int) -> Dict[str, Any]:
        page, page_size = _page_bounds(page, page_size)
        with self.get_session() as session:
            query = session.query(JobModel)
            if status:
                query = query.filter(JobModel.status == status)
            total = query.count()
            jobs = query.order_by(JobModel.created_at.desc(), JobModel.id) \
                .offset((page - 1) * page_size).limit(page_size).all()
            return _paged([_job_to_dict(j) for j in jobs], total, page, page_size)

    async def delete_jobs_older_than(self, cutoff: datetime) -> int:
        """Delete terminal jobs (and their logs) triggered before ``cutoff``."""
        return await self._run(self._delete_jobs_older_than, cutoff)

    def _delete_jobs_older_than(self, cutoff: datetime) -> int:
        with self.get_session() as session:
            jobs = session.query(JobModel).filter(
                JobModel.status.in_(TERMINAL_STATUSES),
                JobModel.triggered_at < cutoff,
            ).all()
            for job in jobs:
                session.delete(job)
            return len(jobs)

    # ── Job logs ─────────────────────────────────────────────────────

    async def append_log(self, job_id: str, level: str, message: str,
                         source_id: Optional[str] = None,
                         payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return await self._run(self._append_log, job_id, level, message, source_id, payload)

    def _append_log(self, job_id: str, level: str, message: str,
                    source_id: Optional[str], payload: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        level = level.value if isinstance(level, LogLevel) else level
        if level not in {lvl.value for lvl in LogLevel}:
            raise ValueError(f"Unknown log level: {level}")
        with self.get_session() as session:
            entry = JobLogModel(
                job_id=job_id,
                source_id=source_id,
                level=level,
                message=message,
                payload=payload or {},
                timestamp=utcnow(),
            )
            session.add(entry)
            session.flush()
            return _log_to_dict(entry)

    async def get_job_logs(self, job_id: str, level: Optional[str] = None, page: int = 1,
                           page_size: int = 50) -> Dict[str, Any]:
        return await self._run(self._get_job_logs, job_id, level, page, page_size)

    def _get_job_logs(self, job_id: str, level: Optional[str], page: int, page_size: int) -> Dict[str, Any]:
        page, page_size = _page_bounds(page, page_size)
        with self.get_session() as session:
            query = session.query(JobLogModel).filter(JobLogModel.job_id == job_id)
            if level:
                query = query.filter(JobLogModel.level == level)
            total = query.count()
            entries = query.order_by(JobLogModel.timestamp, JobLogModel.id) \
                .offset((page - 1) * page_size).limit(page_size).all()
            return _paged([_log_to_dict(e) for e in entries], total, page, page_size)


    # ── Job and source analytics ─────────────────────────────────────

    async def get_job_summary(self, job_id: str) -> Optional[Dict[str, Any]]:
        """
        Error summary, per-source performance and timeline of one job.

        Returns:
            Summary dict, or None when the job does not exist
        """
        return await self._run(self._get_job_summary, job_id)

    def _get_job_summary(self, job_id: str) -> Optional[Dict[str, Any]]:
        with self.get_session() as session:
            job = session.get(JobModel, job_id)
            if job is None:
                return None
            entries = session.query(JobLogModel).filter(JobLogModel.job_id == job_id) \
                .order_by(JobLogModel.timestamp, JobLogModel.id).all()
            logs = [_log_to_dict(e) for e in entries]
            job_dict = _job_to_dict(job)

        started_at = job.triggered_at
        finished_at = job.completed_at
        return {
            'job_id': job_id,
            'status': job_dict['status'],
            'started_at': job_dict['triggered_at'],
            'completed_at': job_dict['completed_at'],
            'duration_seconds': (finished_at - started_at).total_seconds() if finished_at else None,
            'total_logs': len(logs),
            'error_summary': _error_summary(logs),
            'source_performance': _source_performance(logs),
            'timeline': [
                {
                    'timestamp': log['timestamp'],
                    'level': log['level'],
                    'message': log['message'],
                    'source_id': log['source_id'],
                }
                for log in logs
                if log['source_id'] is None or log['level'] != LogLevel.INFO.value
            ],
        }

    async def get_source_health(self, source_id: str, recent_jobs: int = 20) -> Dict[str, Any]:
        """
        Aggregate a source's outcomes over its ``recent_jobs`` latest finished jobs.

        Cancelled runs are counted separately and do not affect the success rate.
        """
        return await self._run(self._get_source_health, source_id, recent_jobs)

    def _get_source_health(self, source_id: str, recent_jobs: int) -> Dict[str, Any]:
        runs = []
        with self.get_session() as session:
            summaries = session.query(JobLogModel) \
                .join(JobModel, JobModel.id == JobLogModel.job_id) \
                .filter(JobLogModel.source_id.is_(None), JobModel.status.in_(TERMINAL_STATUSES)) \
                .order_by(JobLogModel.timestamp.desc(), JobLogModel.id.desc())
            for entry in summaries.yield_per(200):
                outcome = next((o for o in (entry.payload or {}).get('outcomes', [])
                                if o.get('source_id') == source_id), None)
                if outcome is not None:
                    runs.append((entry.job_id, entry.timestamp, outcome))
                    if len(runs) >= recent_jobs:
                        break

            job_ids = [job_id for job_id, _, _ in runs]
            problems = []
            if job_ids:
                problems = session.query(JobLogModel).filter(
                    JobLogModel.job_id.in_(job_ids),
                    JobLogModel.source_id == source_id,
                    JobLogModel.level.in_([LogLevel.WARNING.value, LogLevel.ERROR.value]),
                ).order_by(JobLogModel.timestamp.desc(), JobLogModel.id.desc()).all()
            problems = [_log_to_dict(p) for p in problems]

        counted = [(ts, o) for _, ts, o in runs if not o.get('cancelled')]
        successes = [ts for ts, o in counted if o.get('outcome') == 'succeeded']
        failures = [(ts, o) for ts, o in counted if o.get('outcome') != 'succeeded']
        success_rate = round(len(successes) / len(counted) * 100, 1) if counted else None
        items = sum(o.get('items_persisted', 0) for _, o in counted)
        last_counted_ok = bool(counted) and counted[0][1].get('outcome') == 'succeeded'
        errors = [p for p in problems if p['level'] == LogLevel.ERROR.value]

        return {
            'source_id': source_id,
            'is_healthy': not counted or (last_counted_ok and success_rate >= HEALTHY_SUCCESS_RATE),
            'success_rate': success_rate,
            'total_runs': len(runs),
            'successful_runs': len(successes),
            'failed_runs': len(failures),
            'cancelled_runs': len(runs) - len(counted),
            'items_persisted': items,
            'average_items_per_run': round(items / len(counted), 2) if counted else 0,
            'duplicates_skipped': sum(o.get('duplicates_skipped', 0) for _, o in counted),
            'articles_attempted': sum(o.get('articles_attempted', 0) for _, o in counted),
            'articles_failed': sum(o.get('articles_failed', 0) for _, o in counted),
            'error_count': len(errors),
            'warning_count': len(problems) - len(errors),
            'last_error': {
                'error_type': failures[0][1].get('error_type'),
                'message': failures[0][1].get('error_message'),
                'at': isoformat(failures[0][0]),
            } if failures else None,
            'last_run_at': isoformat(runs[0][1]) if runs else None,
            'last_success_at': isoformat(successes[0]) if successes else None,
            'checked_at': isoformat(utcnow()),
        }
    # ── Content ──────────────────────────────────────────────────────

    async def url_exists(self, source_url: str) -> bool:
        return await self._run(self._url_exists, source_url)

    def _url_exists(self, source_url: str) -> bool:
        with self.get_session() as session:
            if session.query(ContentItemModel.id).filter_by(source_url=source_url).first():
                return True
            return session.query(ArchiveRecordModel.id).filter_by(source_url=source_url).first() is not None

    async def hash_exists(self, content_hash: str) -> bool:
        return await self._run(self._hash_exists, content_hash)

    def _hash_exists(self, content_hash: str) -> bool:
        with self.get_session() as session:
            if session.query(ContentItemModel.id).filter_by(content_hash=content_hash).first():
                return True
            return session.query(ArchiveRecordModel.id).filter_by(content_hash=content_hash).first() is not None

    async def insert_content(self, record: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Insert a content item.

        Args:
            record: Column mapping produced by ``ArticleContent.to_record``

        Returns:
            The stored item, or None if the unique constraint rejected it
        """
        return await self._run(self._insert_content, record)

    def _insert_content(self, record: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        try:
            with self.get_session() as session:
                item = ContentItemModel(id=record.get('id') or new_id(), **{
                    k: v for k, v in record.items() if k != 'id'
                })
                if item.created_at is None:
                    item.created_at = utcnow()
                session.add(item)
                session.flush()
                return _content_to_dict(item)
        except IntegrityError:
            logger.debug(f"Unique constraint rejected {record.get('source_url')}")
            return None

    async def get_content(self, item_id: str, include_html: bool = False) -> Optional[Dict[str, Any]]:
        return await self._run(self._get_content, item_id, include_html)

    def _get_content(self, item_id: str, include_html: bool) -> Optional[Dict[str, Any]]:
        with self.get_session() as session:
            item = session.get(ContentItemModel, item_id)
            return _content_to_dict(item, include_html) if item else None

    async def list_content(self, source_id: Optional[str] = None, language: Optional[str] = None,
                           status: Optional[str] = None, search: Optional[str] = None,
                           page: int = 1, page_size: int = DEFAULT_PAGE_SIZE) -> Dict[str, Any]:
        return await self._run(self._list_content, source_id, language, status, search, page, page_size)

    def _list_content(self, source_id, language, status, search, page, page_size) -> Dict[str, Any]:
        page, page_size = _page_bounds(page, page_size)
        with self.get_session() as session:
            query = session.query(ContentItemModel)
            if source_id:
                query = query.filter(ContentItemModel.source_id == source_id)
            if language:
                query = query.filter(ContentItemModel.language == language)
            if status:
                query = query.filter(ContentItemModel.processing_status == status)
            if search:
                pattern = f"%{search.strip()}%"
                query = query.filter(or_(
                    ContentItemModel.title.ilike(pattern),
                    ContentItemModel.body.ilike(pattern),
                ))
            total = query.count()
            items = query.order_by(ContentItemModel.created_at.desc(), ContentItemModel.id) \
                .offset((page - 1) * page_size).limit(page_size).all()
            return _paged([_content_to_dict(i) for i in items], total, page, page_size)

    async def count_content(self) -> int:
        return await self._run(self._count_content)

    def _count_content(self) -> int:
        with self.get_session() as session:
            return session.query(func.count(ContentItemModel.id)).scalar() or 0

    async def get_storage_size(self) -> int:
        """Bytes of body and HTML held in the active store."""
        return await self._run(self._get_storage_size)

    def _get_storage_size(self) -> int:
        with self.get_session() as session:
            total = session.query(
                func.coalesce(func.sum(ContentItemModel.body_size + ContentItemModel.html_size), 0)
            ).scalar()
            return int(total or 0)

    # ── Archival ─────────────────────────────────────────────────────

    async def select_older_than(self, cutoff: datetime, limit: int) -> List[str]:
        """Ids of active items created before ``cutoff``, oldest first."""
        return await self._run(self._select_older_than, cutoff, limit)

    def _select_older_than(self, cutoff: datetime, limit: int) -> List[str]:
        with self.get_session() as session:
            rows = session.query(ContentItemModel.id).filter(ContentItemModel.created_at < cutoff) \
                .order_by(ContentItemModel.created_at, ContentItemModel.id).limit(limit).all()
            return [row.id for row in rows]

    async def select_over_cap(self, cap_bytes: int, newest_allowed: datetime, limit: int) -> List[str]:
        """Ids of the oldest items whose removal brings the store under ``cap_bytes``.

        Items created after ``newest_allowed`` are never selected.
        """
        return await self._run(self._select_over_cap, cap_bytes, newest_allowed, limit)

    def _select_over_cap(self, cap_bytes: int, newest_allowed: datetime, limit: int) -> List[str]:
        with self.get_session() as session:
            total = session.query(
                func.coalesce(func.sum(ContentItemModel.body_size + ContentItemModel.html_size), 0)
            ).scalar() or 0
            rows = session.query(
                ContentItemModel.id, ContentItemModel.body_size, ContentItemModel.html_size
            ).filter(ContentItemModel.created_at < newest_allowed) \
                .order_by(ContentItemModel.created_at, ContentItemModel.id).all()

            selected = []
            for row in rows:
                size = (row.body_size or 0) + (row.html_size or 0)
                if total <= cap_bytes or len(selected) >= limit:
                    break
                selected.append(row.id)
                total -= size
            return selected

    async def archive_item(self, item_id: str, compression_level: int = 6) -> Optional[Dict[str, Any]]:
        """
        Compress an item into an archive record and delete the active row.

        Both happen in one transaction. Returns None when the item no longer
        exists or was archived concurrently.
        """
        return await self._run(self._archive_item, item_id, compression_level)

    def _archive_item(self, item_id: str, compression_level: int) -> Optional[Dict[str, Any]]:
        try:
            with self.get_session() as session:
                item = session.get(ContentItemModel, item_id)
                if item is None:
                    return None

                body_bytes = item.body.encode('utf-8')
                html_bytes = item.full_html.encode('utf-8') if item.full_html is not None else None
                compressed_body = gzip.compress(body_bytes, compresslevel=compression_level)
                compressed_html = (
                    gzip.compress(html_bytes, compresslevel=compression_level)
                    if html_bytes is not None else None
                )
                original_size = len(body_bytes) + len(html_bytes or b'')
                compressed_size = len(compressed_body) + len(compressed_html or b'')

                archive = ArchiveRecordModel(
                    id=new_id(),
                    original_id=item.id,
                    source_id=item.source_id,
                    source_url=item.source_url,
                    title=item.title,
                    content_hash=item.content_hash,
                    compressed_body=compressed_body,
                    compressed_html=compressed_html,
                    item_metadata={
                        'job_id': item.job_id,
                        'author': item.author,
                        'publication_date': isoformat(item.publication_date),
                        'language': item.language,
                        'category': item.category,
                        'tags': list(item.tags or []),
                        'processing_status': item.processing_status,
                    },
                    original_size=original_size,
                    compressed_size=compressed_size,
                    compression_ratio=compressed_size / original_size if original_size else 1.0,
                    original_created_at=item.created_at,
                    archived_at=utcnow(),
                )
                session.add(archive)
                session.delete(item)
                session.flush()
                return _archive_to_dict(archive)
        except IntegrityError:
            logger.debug(f"Item {item_id} was already archived")
            return None

    async def get_archive(self, archive_id: str) -> Optional[Dict[str, Any]]:
        return await self._run(self._get_archive, archive_id)

    def _get_archive(self, archive_id: str) -> Optional[Dict[str, Any]]:
        with self.get_session() as session:
            archive = session.get(ArchiveRecordModel, archive_id)
            if archive is None:
                archive = session.query(ArchiveRecordModel).filter_by(original_id=archive_id).first()
            return _archive_to_dict(archive, include_payload=True) if archive else None

    async def get_archive_stats(self) -> Dict[str, Any]:
        return await self._run(self._get_archive_stats)

    def _get_archive_stats(self) -> Dict[str, Any]:
        with self.get_session() as session:
            count, original, compressed = session.query(
                func.count(ArchiveRecordModel.id),
                func.coalesce(func.sum(ArchiveRecordModel.original_size), 0),
                func.coalesce(func.sum(ArchiveRecordModel.compressed_size), 0),
            ).one()
            return {
                'archived_items': int(count or 0),
                'original_bytes': int(original or 0),
                'compressed_bytes': int(compressed or 0),
                'average_ratio': (compressed / original) if original else None,
            }


def _error_summary(logs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Group recorded failures by error type, level and HTTP status."""
    groups: Dict[tuple, Dict[str, Any]] = {}
    for log in logs:
        error_type = log['payload'].get('error_type')
        if not error_type or log['level'] == LogLevel.INFO.value:
            continue
        key = (error_type, log['level'], log['payload'].get('http_status'))
        group = groups.setdefault(key, {
            'error_type': error_type,
            'level': log['level'],
            'http_status': key[2],
            'count': 0,
            'sample_urls': [],
        })
        group['count'] += 1
        url = log['payload'].get('source_url')
        if url and url not in group['sample_urls'] and len(group['sample_urls']) < 5:
            group['sample_urls'].append(url)
    return sorted(groups.values(), key=lambda g: (-g['count'], g['error_type']))


def _source_performance(logs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Per-source log activity merged with the outcomes of the job summary entry."""
    outcomes = []
    for log in logs:
        if log['source_id'] is None and 'outcomes' in log['payload']:
            outcomes = log['payload']['outcomes']

    sources: Dict[str, Dict[str, Any]] = {}
    for outcome in outcomes:
        sources[outcome['source_id']] = dict(outcome, events=0, warnings=0, errors=0,
                                             first_event_at=None, last_event_at=None)
    for log in logs:
        if log['source_id'] is None:
            continue
        entry = sources.setdefault(log['source_id'], {
            'source_id': log['source_id'],
            'source_name': log['payload'].get('source_name'),
            'outcome': None,
            'events': 0, 'warnings': 0, 'errors': 0,
            'first_event_at': None, 'last_event_at': None,
        })
        entry['events'] += 1
        if log['level'] == LogLevel.WARNING.value:
            entry['warnings'] += 1
        elif log['level'] == LogLevel.ERROR.value:
            entry['errors'] += 1
        entry['first_event_at'] = entry['first_event_at'] or log['timestamp']
        entry['last_event_at'] = log['timestamp']
    return list(sources.values())


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _source_to_dict(source: SourceModel) -> Dict[str, Any]:
    return {
        'id': source.id,
        'name': source.name,
        'domain': source.domain,
        'feed_url': source.feed_url,
        'default_category': source.default_category,
        'is_active': source.is_active,
        'respect_robots': source.respect_robots,
        'delay_ms': source.delay_ms,
        'user_agent': source.user_agent,
        'timeout_ms': source.timeout_ms,
        'created_at': isoformat(source.created_at),
        'updated_at': isoformat(source.updated_at),
    }


def _job_to_dict(job: JobModel) -> Dict[str, Any]:
    return {
        'id': job.id,
        'status': job.status,
        'sources_requested': list(job.sources_requested or []),
        'articles_per_source': job.articles_per_source,
        'total_articles_scraped': job.total_articles_scraped,
        'total_errors': job.total_errors,
        'triggered_at': isoformat(job.triggered_at),
        'completed_at': isoformat(job.completed_at),
        'created_at': isoformat(job.created_at),
        'updated_at': isoformat(job.updated_at),
    }


def _log_to_dict(entry: JobLogModel) -> Dict[str, Any]:
    return {
        'id': entry.id,
        'job_id': entry.job_id,
        'source_id': entry.source_id,
        'level': entry.level,
        'message': entry.message,
        'payload': dict(entry.payload or {}),
        'timestamp': isoformat(entry.timestamp),
    }


def _content_to_dict(item: ContentItemModel, include_html: bool = False) -> Dict[str, Any]:
    data = {
        'id': item.id,
        'source_id': item.source_id,
        'job_id': item.job_id,
        'source_url': item.source_url,
        'title': item.title,
        'body': item.body,
        'author': item.author,
        'publication_date': isoformat(item.publication_date),
        'language': item.language,
        'category': item.category,
        'tags': list(item.tags or []),
        'content_hash': item.content_hash,
        'processing_status': item.processing_status,
        'body_size': item.body_size,
        'html_size': item.html_size,
        'created_at': isoformat(item.created_at),
    }
    if include_html:
        data['full_html'] = item.full_html
    return data


def _archive_to_dict(archive: ArchiveRecordModel, include_payload: bool = False) -> Dict[str, Any]:
    data = {
        'id': archive.id,
        'original_id': archive.original_id,
        'source_id': archive.source_id,
        'source_url': archive.source_url,
        'title': archive.title,
        'content_hash': archive.content_hash,
        'metadata': dict(archive.item_metadata or {}),
        'original_size': archive.original_size,
        'compressed_size': archive.compressed_size,
        'compression_ratio': archive.compression_ratio,
        'original_created_at': isoformat(archive.original_created_at),
        'archived_at': isoformat(archive.archived_at),
    }
    if include_payload:
        data['compressed_body'] = archive.compressed_body
        data['compressed_html'] = archive.compressed_html
    return data
