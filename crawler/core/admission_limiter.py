"""
Bounded admission of concurrent source pipelines.

Works like a semaphore whose size can shrink at runtime: the effective
limit is the configured limit reduced by the resource monitor's pressure
level, and may drop to zero, which pauses new starts until pressure clears.
Waiters re-sample the monitor themselves when no background sampling loop
is running, so a paused limiter can always observe the pressure clearing.
"""
import asyncio
from typing import Optional

from loguru import logger


class AdmissionLimiter:
    """Semaphore-style limiter gated by a ResourceMonitor."""

    def __init__(self, limit: int = 3, monitor=None, recheck_interval: float = 1.0):
        """
        Args:
            limit: Configured maximum of concurrently active pipelines
            monitor: Optional ResourceMonitor providing ``allowed_concurrency``
            recheck_interval: Seconds between re-evaluations while waiting
        """
        if limit < 0:
            raise ValueError("limit must be non-negative")
        self.limit = limit
        self.monitor = monitor
        self.recheck_interval = recheck_interval
        self.active = 0
        self.peak_active = 0
        self._last_refresh: Optional[float] = None
        self._condition: Optional[asyncio.Condition] = None

    @property
    def condition(self) -> asyncio.Condition:
        if self._condition is None:
            self._condition = asyncio.Condition()
        return self._condition

    @property
    def effective_limit(self) -> int:
        if self.monitor is None:
            return self.limit
        return self.monitor.allowed_concurrency(self.limit)

    @property
    def paused(self) -> bool:
        return self.effective_limit == 0

    async def acquire(self, cancel_event: Optional[asyncio.Event] = None) -> bool:
        """
        Wait for a free slot.

        Returns:
            True once admitted, False if ``cancel_event`` was set while waiting
        """
        async with self.condition:
            while self.active >= self.effective_limit:
                if cancel_event is not None and cancel_event.is_set():
                    return False
                try:
                    await asyncio.wait_for(self.condition.wait(), timeout=self.recheck_interval)
                except asyncio.TimeoutError:
                    await self._refresh_monitor()
            if cancel_event is not None and cancel_event.is_set():
                return False
            self.active += 1
            self.peak_active = max(self.peak_active, self.active)
            logger.debug(f"🎟️ Pipeline admitted ({self.active}/{self.effective_limit} active)")
            return True

    async def release(self) -> None:
        async with self.condition:
            self.active = max(0, self.active - 1)
            self.condition.notify_all()

    async def wake(self) -> None:
        """Make waiters re-check their state (cancellation, new limits)."""
        async with self.condition:
            self.condition.notify_all()

    async def _refresh_monitor(self) -> None:
        """Re-sample an idle monitor, at most once per recheck interval."""
        if self.monitor is None or getattr(self.monitor, 'running', True):
            return
        now = asyncio.get_running_loop().time()
        if self._last_refresh is not None and now - self._last_refresh < self.recheck_interval:
            return
        self._last_refresh = now
        await self.monitor.sample()
        logger.debug(f"📈 Pressure re-sampled while waiting: {self.effective_limit} slots allowed")
