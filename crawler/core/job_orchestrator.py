"""
Job orchestration: trigger -> bounded concurrent source pipelines ->
aggregated Job record.

The orchestrator is the only writer of Job rows. Pipelines run as asyncio
tasks gated by a shared AdmissionLimiter; aggregation only happens once
every pipeline of the job has settled.
"""
import asyncio
from typing import Any, Dict, List, Optional

from loguru import logger

from crawler.core.admission_limiter import AdmissionLimiter
from crawler.core.error_handler import ErrorHandler
from crawler.core.job_logger import JobLogger
from crawler.interfaces.news_source_interface import ResourceError, SourceConfig, ValidationError
from crawler.models.job_models import JobContext, JobStatus, LogLevel
from crawler.models.source_models import SourceOutcome
from utils.config.settings import Settings, get_settings
from utils.time_utils import utcnow

MAX_ARTICLES_PER_SOURCE = 100


def aggregate_status(outcomes: List[SourceOutcome], cancelled: bool = False) -> JobStatus:
    """
    Fold per-source outcomes into the job's terminal status.

    All succeeded -> successful; some succeeded -> partial; none -> failed.
    A cancelled job is always failed.
    """
    if cancelled or not outcomes:
        return JobStatus.FAILED
    succeeded = sum(1 for o in outcomes if o.succeeded)
    if succeeded == len(outcomes):
        return JobStatus.SUCCESSFUL
    if succeeded > 0:
        return JobStatus.PARTIAL
    return JobStatus.FAILED


class JobOrchestrator:
    """Accepts triggers and drives jobs to a terminal state."""

    def __init__(self, store, registry, source_crawler, monitor=None,
                 error_handler: Optional[ErrorHandler] = None,
                 settings: Optional[Settings] = None):
        """
        Args:
            store: ContentStore holding jobs and logs
            registry: SourceRegistry resolving trigger identifiers
            source_crawler: SourceCrawler running one source pipeline
            monitor: Optional ResourceMonitor gating admission
            error_handler: ErrorHandler shared with the crawler
            settings: Runtime settings (concurrency, default quota)
        """
        self.store = store
        self.registry = registry
        self.source_crawler = source_crawler
        self.monitor = monitor
        self.error_handler = error_handler or source_crawler.error_handler
        self.settings = settings or get_settings()
        self.limiter = AdmissionLimiter(
            limit=self.settings.max_concurrent_sources,
            monitor=monitor,
            recheck_interval=self.settings.admission_recheck_seconds,
        )
        self._contexts: Dict[str, JobContext] = {}
        self._tasks: Dict[str, asyncio.Task] = {}

    async def trigger(self, sources: List[str], articles_per_source: Optional[int] = None) -> str:
        """
        Validate a trigger, create the job in state ``new`` and schedule it.

        Args:
            sources: Source ids, domains or names
            articles_per_source: Item quota per source (default from settings)

        Returns:
            The new job id

        Raises:
            ValidationError: Empty or entirely invalid source list, or bad quota
        """
        if articles_per_source is None:
            articles_per_source = self.settings.default_articles_per_source
        if isinstance(articles_per_source, bool) or not isinstance(articles_per_source, int) \
                or not 1 <= articles_per_source <= MAX_ARTICLES_PER_SOURCE:
            raise ValidationError(
                f"articles_per_source must be an integer between 1 and {MAX_ARTICLES_PER_SOURCE}"
            )
        if not sources:
            raise ValidationError("No sources supplied")

        resolved, rejected = await self.registry.resolve_active(list(sources))
        if not resolved:
            raise ValidationError(f"No valid active sources in request: {', '.join(map(str, rejected))}")

        job = await self.store.create_job([s.id for s in resolved], articles_per_source)
        job_id = job['id']
        job_log = JobLogger(self.store, job_id)
        context = JobContext(
            job_id=job_id,
            articles_per_source=articles_per_source,
            log=job_log,
            limiter=self.limiter,
        )
        self._contexts[job_id] = context

        logger.info(f"🆕 Job {job_id} accepted for {len(resolved)} sources x {articles_per_source} articles")
        await job_log.info(
            "Job accepted",
            sources=[s.name for s in resolved],
            articles_per_source=articles_per_source,
        )
        if rejected:
            await job_log.warning(f"Ignored unknown or inactive sources: {', '.join(rejected)}",
                                  rejected=rejected)

        task = asyncio.create_task(self._execute(context, resolved))
        self._tasks[job_id] = task
        task.add_done_callback(lambda _t, jid=job_id: self._forget(jid))
        return job_id

    async def run_job(self, sources: List[str], articles_per_source: Optional[int] = None) -> Dict[str, Any]:
        """Trigger a job and wait for it to reach a terminal state."""
        job_id = await self.trigger(sources, articles_per_source)
        return await self.wait_for_job(job_id)

    async def wait_for_job(self, job_id: str, timeout: Optional[float] = None) -> Optional[Dict[str, Any]]:
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
        return await self.store.get_job(job_id)

    async def cancel(self, job_id: str, reason: str = "cancelled by request") -> bool:
        """
        Signal cancellation for a running job.

        Returns:
            True if the job was running and has been flagged
        """
        context = self._contexts.get(job_id)
        if context is None:
            return False
        context.cancel(reason)
        logger.warning(f"🛑 Cancellation requested for job {job_id}: {reason}")
        await self.limiter.wake()
        return True

    async def get_job_status(self, job_id: str) -> Optional[Dict[str, Any]]:
        job = await self.store.get_job(job_id)
        if job is not None:
            job['running'] = job_id in self._tasks
        return job

    @property
    def active_jobs(self) -> List[str]:
        return list(self._tasks)

    async def shutdown(self, reason: str = "shutdown") -> None:
        """Cancel running jobs and wait for them to settle."""
        for job_id in list(self._contexts):
            await self.cancel(job_id, reason)
        tasks = list(self._tasks.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _forget(self, job_id: str) -> None:
        self._tasks.pop(job_id, None)
        self._contexts.pop(job_id, None)

    async def _execute(self, context: JobContext, sources: List[SourceConfig]) -> None:
        job_id = context.job_id
        try:
            await self.store.update_job(job_id, status=JobStatus.IN_PROGRESS)
            await context.log.info(f"Scheduling {len(sources)} source pipelines",
                                   concurrency_limit=self.limiter.limit)

            outcomes = await asyncio.gather(*(self._run_source(source, context) for source in sources))
            await self._finish(context, list(outcomes))
        except Exception as e:
            logger.exception(f"💥 Job {job_id} crashed: {e}")
            await context.log.record_error(LogLevel.ERROR, f"Job aborted: {e}", error_type=type(e).__name__)
            await self.store.update_job(
                job_id,
                status=JobStatus.FAILED,
                total_errors=context.log.error_count,
                completed_at=utcnow(),
            )

    async def _run_source(self, source: SourceConfig, context: JobContext) -> SourceOutcome:
        if self.limiter.paused and not context.is_cancelled:
            # Pressure delays the pipeline; it is not counted as a job error.
            pressure = ResourceError("Admission paused by resource pressure", source_name=source.name)
            await context.log.warning(str(pressure), source, error_type=pressure.error_type,
                                      pressure_level=self.monitor.level.value if self.monitor else None)

        admitted = await self.limiter.acquire(context.cancel_event)
        if not admitted:
            reason = context.cancel_reason or "cancelled"
            await context.log.warning(f"Source {source.name} not started: {reason}", source)
            outcome = SourceOutcome.failure(source.id, source.name, "Cancelled", reason)
            outcome.cancelled = True
            return outcome

        try:
            return await self.source_crawler.crawl(source, context)
        except Exception as e:
            error = await self.error_handler.record(context.log, e, source, level=LogLevel.ERROR)
            return SourceOutcome.failure(source.id, source.name, error.error_type, str(error))
        finally:
            await self.limiter.release()

    async def _finish(self, context: JobContext, outcomes: List[SourceOutcome]) -> None:
        status = aggregate_status(outcomes, context.is_cancelled)
        total_persisted = sum(o.items_persisted for o in outcomes)
        succeeded = sum(1 for o in outcomes if o.succeeded)

        summary = {
            'status': status.value,
            'total_articles_scraped': total_persisted,
            'duplicates_skipped': sum(o.duplicates_skipped for o in outcomes),
            'sources_succeeded': succeeded,
            'sources_failed': len(outcomes) - succeeded,
            'outcomes': [o.to_dict() for o in outcomes],
        }
        if context.is_cancelled:
            summary['cancel_reason'] = context.cancel_reason

        level = LogLevel.INFO if status == JobStatus.SUCCESSFUL else LogLevel.WARNING
        await context.log.log(
            level,
            f"Job finished {status.value}: {total_persisted} new items, "
            f"{succeeded}/{len(outcomes)} sources succeeded",
            **summary
        )
        await self.store.update_job(
            context.job_id,
            status=status,
            total_articles_scraped=total_persisted,
            total_errors=context.log.error_count,
            completed_at=utcnow(),
        )
        logger.info(f"🏁 Job {context.job_id} {status.value}: {total_persisted} items, "
                    f"{context.log.error_count} errors")
