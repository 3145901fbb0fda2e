"""
Wiring of the pipeline components and a background event loop for
synchronous hosts (the Flask API, the CLI).
"""
import asyncio
import os
import threading
from typing import Any, Awaitable, Optional

from loguru import logger

from clients.content_store import ContentStore
from crawler.core.error_handler import ErrorHandler, RetryPolicy
from crawler.core.job_orchestrator import JobOrchestrator
from crawler.core.source_crawler import SourceCrawler
from crawler.extractors.content_classifier import ContentClassifier
from crawler.factories.source_registry import SourceRegistry
from monitoring.duplicate_detector import DuplicateDetector
from monitoring.lifecycle import CleanupManager, get_policy
from monitoring.resource_monitor import ResourceMonitor
from utils.config.settings import Settings, get_settings


def _ensure_sqlite_dir(database_url: str) -> None:
    prefix = 'sqlite:///'
    if database_url.startswith(prefix) and ':memory:' not in database_url:
        directory = os.path.dirname(database_url[len(prefix):])
        if directory:
            os.makedirs(directory, exist_ok=True)


class PipelineRuntime:
    """Owns one instance of every pipeline component."""

    def __init__(self, settings: Optional[Settings] = None, store: Optional[ContentStore] = None,
                 fetcher_factory=None, memory_reader=None, error_handler: Optional[ErrorHandler] = None):
        self.settings = settings or get_settings()
        if store is None:
            _ensure_sqlite_dir(self.settings.database_url)
            store = ContentStore(self.settings.database_url)
        self.store = store

        self.error_handler = error_handler or ErrorHandler(RetryPolicy.from_settings(self.settings))
        self.registry = SourceRegistry(self.store, fetcher_factory=fetcher_factory, error_handler=self.error_handler)
        self.duplicate_detector = DuplicateDetector(self.store, max_cached=self.settings.url_cache_size)
        self.classifier = ContentClassifier()

        monitor_kwargs = {'memory_reader': memory_reader} if memory_reader else {}
        self.monitor = ResourceMonitor.from_settings(self.store, self.settings, **monitor_kwargs)
        self.cleanup = CleanupManager(
            self.store,
            policy=get_policy(self.settings.cleanup_policy),
            job_retention_days=self.settings.job_retention_days,
            interval_hours=self.settings.cleanup_interval_hours,
            pressure_cap_mb=self.monitor.storage_high_water_mb,
        )
        self.monitor.register_pressure_callback(self.cleanup.on_storage_pressure)

        self.source_crawler = SourceCrawler(
            self.store,
            self.duplicate_detector,
            classifier=self.classifier,
            error_handler=self.error_handler,
            fetcher_factory=fetcher_factory,
            failure_ratio=self.settings.source_failure_ratio,
        )
        self.orchestrator = JobOrchestrator(
            self.store,
            self.registry,
            self.source_crawler,
            monitor=self.monitor,
            error_handler=self.error_handler,
            settings=self.settings,
        )

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self.started = False

    async def start(self, background_tasks: bool = True) -> None:
        """Seed sources and optionally start monitoring and the cleanup schedule."""
        if self.started:
            return
        if self.settings.seed_sources and os.path.exists(self.settings.sources_config_path):
            await self.registry.import_sources(self.settings.sources_config_path)
        await self.monitor.sample()
        if background_tasks:
            self.monitor.start()
            self.cleanup.start_scheduler()
        self.started = True
        logger.info("🚀 Newswire pipeline runtime started")

    async def stop(self) -> None:
        await self.orchestrator.shutdown()
        await self.monitor.stop()
        await self.cleanup.stop_scheduler()
        self.duplicate_detector.log_statistics()
        self.started = False
        logger.info("✅ Newswire pipeline runtime stopped")

    # ── Background loop for synchronous callers ──────────────────────

    def start_background_loop(self, background_tasks: bool = True) -> None:
        """Run an event loop in a daemon thread so jobs outlive requests."""
        if self._loop is not None:
            return
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._loop.run_forever, name='pipeline-loop', daemon=True)
        self._thread.start()
        self.call(self.start(background_tasks=background_tasks))

    def call(self, coro: Awaitable[Any], timeout: Optional[float] = 60) -> Any:
        """Run ``coro`` on the background loop and wait for its result."""
        if self._loop is None:
            raise RuntimeError("Background loop is not running")
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        return future.result(timeout=timeout)

    def stop_background_loop(self) -> None:
        if self._loop is None:
            return
        try:
            self.call(self.stop())
        finally:
            self._loop.call_soon_threadsafe(self._loop.stop)
            self._thread.join(timeout=5)
            self._loop.close()
            self._loop = None
            self._thread = None
