"""
Memory and storage sampling for the Newswire pipeline.

The monitor turns samples into a pressure level, which drives two
decisions: how many source pipelines may run at once, and whether the
cleanup manager should run an eviction pass.
"""
import asyncio
import os
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

import psutil
from loguru import logger

from utils.time_utils import isoformat, utcnow

MB = 1024 * 1024


class PressureLevel(Enum):
    NORMAL = "normal"
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass
class ResourceSample:
    """One reading of process memory and active-store size."""
    level: PressureLevel
    memory_mb: Optional[float] = None
    storage_mb: Optional[float] = None
    sampled_at: datetime = field(default_factory=utcnow)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'level': self.level.value,
            'memory_mb': round(self.memory_mb, 2) if self.memory_mb is not None else None,
            'storage_mb': round(self.storage_mb, 2) if self.storage_mb is not None else None,
            'sampled_at': isoformat(self.sampled_at),
            'error': self.error,
        }


def process_memory_mb() -> float:
    """Resident set size of this process in MB."""
    process = psutil.Process(os.getpid())
    return process.memory_info().rss / MB


class ResourceMonitor:
    """Samples memory and storage and exposes the admission decision."""

    def __init__(self, store, memory_warning_mb: float = 256, memory_critical_mb: float = 512,
                 storage_warning_mb: float = 500, storage_critical_mb: float = 800,
                 storage_high_water_mb: float = 700, interval_seconds: float = 30,
                 memory_reader: Callable[[], float] = process_memory_mb):
        """
        Args:
            store: ContentStore reporting ``get_storage_size``
            memory_warning_mb: RSS at which concurrency drops to one pipeline
            memory_critical_mb: RSS at which new pipelines are paused
            storage_warning_mb: Active-store size for the warning level
            storage_critical_mb: Active-store size for the critical level
            storage_high_water_mb: Active-store size that triggers eviction
            interval_seconds: Sampling interval of the background loop
            memory_reader: Callable returning memory usage in MB
        """
        if memory_warning_mb > memory_critical_mb or storage_warning_mb > storage_critical_mb:
            raise ValueError("warning thresholds must not exceed critical thresholds")
        self.store = store
        self.memory_warning_mb = memory_warning_mb
        self.memory_critical_mb = memory_critical_mb
        self.storage_warning_mb = storage_warning_mb
        self.storage_critical_mb = storage_critical_mb
        self.storage_high_water_mb = storage_high_water_mb
        self.interval_seconds = interval_seconds
        self.memory_reader = memory_reader

        self.last_sample: Optional[ResourceSample] = None
        self.samples_taken = 0
        self.sampling_failures = 0
        self._callbacks: List[Callable[[ResourceSample], Awaitable[Any]]] = []
        self._task: Optional[asyncio.Task] = None

    @classmethod
    def from_settings(cls, store, settings, **kwargs) -> 'ResourceMonitor':
        return cls(
            store,
            memory_warning_mb=settings.memory_warning_mb,
            memory_critical_mb=settings.memory_critical_mb,
            storage_warning_mb=settings.storage_warning_mb,
            storage_critical_mb=settings.storage_critical_mb,
            storage_high_water_mb=settings.storage_high_water_mb,
            interval_seconds=settings.monitor_interval_seconds,
            **kwargs
        )

    @property
    def level(self) -> PressureLevel:
        # Nothing sampled yet counts as normal.
        if self.last_sample is None:
            return PressureLevel.NORMAL
        return self.last_sample.level

    def _level_for(self, memory_mb: float, storage_mb: float) -> PressureLevel:
        if memory_mb >= self.memory_critical_mb or storage_mb >= self.storage_critical_mb:
            return PressureLevel.CRITICAL
        if memory_mb >= self.memory_warning_mb or storage_mb >= self.storage_warning_mb:
            return PressureLevel.WARNING
        return PressureLevel.NORMAL

    async def sample(self) -> ResourceSample:
        """Take a reading; failures yield the restrictive critical level.

        A reading above the storage high-water mark runs the pressure
        callbacks first, then re-measures storage so the returned level
        reflects any eviction they performed.
        """
        sample = await self._read()
        if sample.storage_mb is not None and sample.storage_mb >= self.storage_high_water_mb:
            await self._fire_pressure(sample)
            await self._remeasure_storage(sample)

        previous = self.level
        self.last_sample = sample
        self.samples_taken += 1
        if sample.level != previous:
            logger.warning(f"⚠️ Resource pressure {previous.value} -> {sample.level.value} "
                           f"(memory {sample.memory_mb} MB, storage {sample.storage_mb} MB)")
        return sample

    async def _read(self) -> ResourceSample:
        try:
            memory_mb = float(self.memory_reader())
            storage_mb = await self.store.get_storage_size() / MB
            return ResourceSample(
                level=self._level_for(memory_mb, storage_mb),
                memory_mb=memory_mb,
                storage_mb=storage_mb,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.sampling_failures += 1
            logger.error(f"❌ Resource sampling failed, pausing admission: {e}")
            return ResourceSample(level=PressureLevel.CRITICAL, error=str(e))

    async def _remeasure_storage(self, sample: ResourceSample) -> None:
        try:
            storage_mb = await self.store.get_storage_size() / MB
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"❌ Storage re-measure after cleanup failed, keeping earlier reading: {e}")
            return
        if storage_mb != sample.storage_mb:
            logger.info(f"🧹 Storage after pressure cleanup: {sample.storage_mb:.1f} -> {storage_mb:.1f} MB")
        sample.storage_mb = storage_mb
        sample.level = self._level_for(sample.memory_mb, storage_mb)

    def allowed_concurrency(self, base: int) -> int:
        """Admission decision: pipelines allowed to run given ``base``."""
        level = self.level
        if level == PressureLevel.CRITICAL:
            return 0
        if level == PressureLevel.WARNING:
            return min(base, 1)
        return base

    def register_pressure_callback(self, callback: Callable[[ResourceSample], Awaitable[Any]]) -> None:
        """Register a coroutine function called when storage passes the high-water mark."""
        self._callbacks.append(callback)

    async def _fire_pressure(self, sample: ResourceSample) -> None:
        logger.warning(f"🧹 Storage {sample.storage_mb:.1f} MB above high-water mark "
                       f"{self.storage_high_water_mb} MB")
        for callback in self._callbacks:
            try:
                await callback(sample)
            except Exception as e:
                logger.error(f"❌ Storage pressure callback failed: {e}")

    async def _loop(self) -> None:
        while True:
            await self.sample()
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> None:
        """Begin periodic sampling on the running event loop."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._loop())
            logger.info(f"📈 Resource monitor started (every {self.interval_seconds}s)")

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
            logger.info("📉 Resource monitor stopped")

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def get_status(self) -> Dict[str, Any]:
        return {
            'level': self.level.value,
            'running': self.running,
            'last_sample': self.last_sample.to_dict() if self.last_sample else None,
            'samples_taken': self.samples_taken,
            'sampling_failures': self.sampling_failures,
            'thresholds': {
                'memory_warning_mb': self.memory_warning_mb,
                'memory_critical_mb': self.memory_critical_mb,
                'storage_warning_mb': self.storage_warning_mb,
                'storage_critical_mb': self.storage_critical_mb,
                'storage_high_water_mb': self.storage_high_water_mb,
            },
        }
