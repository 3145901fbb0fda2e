"""
Data lifecycle management for the Newswire pipeline.

Handles archival of aged or excess content (gzip-compressed archive
records), purging of old finished jobs, and the periodic cleanup schedule.
"""

import asyncio
import gzip
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Dict, Any, Callable, Optional
from loguru import logger

from utils.time_utils import utcnow

MB = 1024 * 1024


@dataclass(frozen=True)
class CleanupPolicy:
    """Retention and eviction parameters for one cleanup run."""
    name: str
    retention_days: int = 30
    volume_cap_mb: float = 1024
    batch_size: int = 500
    compression_level: int = 6
    grace_hours: float = 1.0

    def __post_init__(self):
        if self.retention_days < 1:
            raise ValueError("retention_days must be at least 1")
        if self.volume_cap_mb <= 0:
            raise ValueError("volume_cap_mb must be positive")
        if self.batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if not 1 <= self.compression_level <= 9:
            raise ValueError("compression_level must be between 1 and 9")
        if self.grace_hours < 0:
            raise ValueError("grace_hours must be non-negative")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'retention_days': self.retention_days,
            'volume_cap_mb': self.volume_cap_mb,
            'batch_size': self.batch_size,
            'compression_level': self.compression_level,
            'grace_hours': self.grace_hours,
        }


CLEANUP_POLICIES: Dict[str, CleanupPolicy] = {
    'default': CleanupPolicy('default', retention_days=30, volume_cap_mb=1024, compression_level=6),
    'aggressive': CleanupPolicy('aggressive', retention_days=7, volume_cap_mb=512, compression_level=9),
    'conservative': CleanupPolicy('conservative', retention_days=90, volume_cap_mb=2048, compression_level=3),
}


def get_policy(name: str) -> CleanupPolicy:
    """Look up a preset policy by name."""
    try:
        return CLEANUP_POLICIES[name]
    except KeyError:
        raise ValueError(f"Unknown cleanup policy '{name}'; "
                         f"expected one of {', '.join(CLEANUP_POLICIES)}") from None


class CleanupManager:
    """Archives aged or excess content and purges old jobs."""

    def __init__(self, store, policy: Optional[CleanupPolicy] = None, job_retention_days: int = 14,
                 interval_hours: float = 24, pressure_cap_mb: Optional[float] = None,
                 now: Callable[[], datetime] = utcnow):
        """Initialize the cleanup manager.

        Args:
            store: ContentStore to archive from
            policy: Policy used when a run does not name one (default preset)
            job_retention_days: Finished jobs older than this are deleted
            interval_hours: Period of the background scheduler
            pressure_cap_mb: Volume target of passes triggered by storage pressure
            now: Clock returning naive UTC datetimes
        """
        self.store = store
        self.policy = policy or CLEANUP_POLICIES['default']
        self.job_retention_days = job_retention_days
        self.interval_hours = interval_hours
        self.pressure_cap_mb = pressure_cap_mb
        self._now = now
        self._lock: Optional[asyncio.Lock] = None
        self._scheduler: Optional[asyncio.Task] = None
        self.last_result: Optional[Dict[str, Any]] = None
        self.runs = 0
        logger.info(f"Cleanup manager initialized with '{self.policy.name}' policy "
                    f"({self.policy.retention_days} days retention, {self.policy.volume_cap_mb} MB cap)")

    @property
    def lock(self) -> asyncio.Lock:
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    @property
    def running(self) -> bool:
        return self._lock is not None and self._lock.locked()

    async def run_cleanup(self, reason: str = "manual", policy: Optional[CleanupPolicy] = None) -> Dict[str, Any]:
        """Archive content past retention or over the volume cap.

        A run already in progress makes this call return immediately with
        status ``skipped``.

        Args:
            reason: Label for logs (manual, scheduled, storage_pressure)
            policy: Override for this run only

        Returns:
            Dictionary with cleanup statistics
        """
        policy = policy or self.policy
        start_time = self._now()
        results = {
            'status': 'in_progress',
            'reason': reason,
            'policy': policy.name,
            'archived_by_retention': 0,
            'archived_by_volume_cap': 0,
            'archived_total': 0,
            'jobs_deleted': 0,
            'bytes_before': 0,
            'bytes_after': 0,
            'compressed_bytes': 0,
            'errors': [],
            'start_time': start_time.isoformat(),
            'end_time': None,
            'duration_seconds': 0,
        }

        if self.lock.locked():
            logger.info(f"⏭️ Cleanup already running, skipping {reason} request")
            results['status'] = 'skipped'
            results['end_time'] = results['start_time']
            return results

        async with self.lock:
            logger.info(f"🧹 Starting {reason} cleanup with '{policy.name}' policy")
            try:
                results['bytes_before'] = await self.store.get_storage_size()

                # 1. Retention window
                cutoff = start_time - timedelta(days=policy.retention_days)
                aged = await self.store.select_older_than(cutoff, policy.batch_size)
                results['archived_by_retention'] = await self._archive_batch(aged, policy, results)

                # 2. Volume cap, oldest first, never inside the grace period
                remaining = policy.batch_size - len(aged)
                if remaining > 0:
                    newest_allowed = start_time - timedelta(hours=policy.grace_hours)
                    excess = await self.store.select_over_cap(
                        int(policy.volume_cap_mb * MB), newest_allowed, remaining
                    )
                    results['archived_by_volume_cap'] = await self._archive_batch(excess, policy, results)

                # 3. Finished jobs and their logs
                job_cutoff = start_time - timedelta(days=self.job_retention_days)
                results['jobs_deleted'] = await self.store.delete_jobs_older_than(job_cutoff)

                results['archived_total'] = results['archived_by_retention'] + results['archived_by_volume_cap']
                results['bytes_after'] = await self.store.get_storage_size()
                results['status'] = 'completed' if not results['errors'] else 'completed_with_errors'
                logger.info(f"✅ Cleanup completed: {results['archived_total']} items archived, "
                            f"{results['jobs_deleted']} jobs purged")
            except Exception as e:
                logger.error(f"❌ Error during cleanup: {e}")
                results['errors'].append(str(e))
                results['status'] = 'failed'
            finally:
                end_time = self._now()
                results['end_time'] = end_time.isoformat()
                results['duration_seconds'] = (end_time - start_time).total_seconds()
                self.last_result = results
                self.runs += 1

        return results

    async def _archive_batch(self, item_ids, policy: CleanupPolicy, results: Dict[str, Any]) -> int:
        archived = 0
        for item_id in item_ids:
            try:
                record = await self.store.archive_item(item_id, policy.compression_level)
            except Exception as e:
                logger.error(f"Error archiving item {item_id}: {e}")
                results['errors'].append(f"{item_id}: {e}")
                continue
            if record is None:
                continue
            archived += 1
            results['compressed_bytes'] += record['compressed_size']
            if archived % 100 == 0:
                logger.info(f"Archived {archived}/{len(item_ids)} items")
        return archived

    async def get_archive_payload(self, archive_id: str) -> Optional[Dict[str, Any]]:
        """Decompress an archive record back to its original body and HTML.

        Args:
            archive_id: Archive id or the id of the archived content item

        Returns:
            Archive metadata plus ``body`` and ``full_html`` text, or None
        """
        archive = await self.store.get_archive(archive_id)
        if archive is None:
            return None
        compressed_body = archive.pop('compressed_body')
        compressed_html = archive.pop('compressed_html')
        archive['body'] = gzip.decompress(compressed_body).decode('utf-8')
        archive['full_html'] = gzip.decompress(compressed_html).decode('utf-8') if compressed_html else None
        return archive

    def pressure_policy(self) -> CleanupPolicy:
        """Policy for a storage-pressure pass.

        The volume cap drops to the pressure target and the grace period is
        lifted, so the pass can bring the store back under the mark that
        paused admission even when every row is recent.
        """
        cap_mb = self.policy.volume_cap_mb
        if self.pressure_cap_mb is not None:
            cap_mb = min(cap_mb, self.pressure_cap_mb)
        return replace(self.policy, volume_cap_mb=cap_mb, grace_hours=0)

    async def on_storage_pressure(self, sample) -> Dict[str, Any]:
        """ResourceMonitor callback for the storage high-water mark."""
        policy = self.pressure_policy()
        logger.warning(f"⚠️ Storage pressure ({sample.storage_mb:.1f} MB), "
                       f"evicting down to {policy.volume_cap_mb} MB")
        return await self.run_cleanup(reason="storage_pressure", policy=policy)

    async def get_statistics(self) -> Dict[str, Any]:
        archive_stats = await self.store.get_archive_stats()
        return {
            'policy': self.policy.to_dict(),
            'running': self.running,
            'runs': self.runs,
            'active_items': await self.store.count_content(),
            'active_bytes': await self.store.get_storage_size(),
            'archive': archive_stats,
            'last_result': self.last_result,
            'scheduler_running': self._scheduler is not None and not self._scheduler.done(),
            'interval_hours': self.interval_hours,
        }

    async def _schedule_loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_hours * 3600)
            try:
                await self.run_cleanup(reason="scheduled")
            except Exception as e:
                logger.error(f"Scheduled cleanup failed: {e}")

    def start_scheduler(self) -> None:
        if self._scheduler is None or self._scheduler.done():
            self._scheduler = asyncio.create_task(self._schedule_loop())
            logger.info(f"🕑 Cleanup scheduled every {self.interval_hours} hours")

    async def stop_scheduler(self) -> None:
        if self._scheduler is not None:
            self._scheduler.cancel()
            try:
                await self._scheduler
            except asyncio.CancelledError:
                pass
            self._scheduler = None
