"""
Structured, persisted logging for one job.

Every entry is mirrored to loguru and appended to the job's log table.
"""
from typing import Any, Dict, Optional

from loguru import logger

from crawler.interfaces.news_source_interface import SourceConfig
from crawler.models.job_models import LogLevel

_LOGURU_LEVELS = {
    LogLevel.INFO: 'INFO',
    LogLevel.WARNING: 'WARNING',
    LogLevel.ERROR: 'ERROR',
}


def _json_safe(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, dict):
        return {str(k): _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_json_safe(v) for v in value]
    return str(value)


class JobLogger:
    """Writes JobLogEntry rows for a single job and counts recorded errors."""

    def __init__(self, store, job_id: str):
        self.store = store
        self.job_id = job_id
        self.error_count = 0

    async def log(self, level: LogLevel, message: str, source: Optional[SourceConfig] = None,
                  **payload) -> Dict[str, Any]:
        if source is not None:
            payload.setdefault('source_name', source.name)
        logger.log(_LOGURU_LEVELS[level], f"[job {self.job_id[:8]}] {message}")
        return await self.store.append_log(
            self.job_id,
            level.value,
            message,
            source_id=source.id if source else None,
            payload=_json_safe(payload),
        )

    async def info(self, message: str, source: Optional[SourceConfig] = None, **payload):
        return await self.log(LogLevel.INFO, message, source, **payload)

    async def warning(self, message: str, source: Optional[SourceConfig] = None, **payload):
        return await self.log(LogLevel.WARNING, message, source, **payload)

    async def error(self, message: str, source: Optional[SourceConfig] = None, **payload):
        return await self.log(LogLevel.ERROR, message, source, **payload)

    async def record_error(self, level: LogLevel, message: str, source: Optional[SourceConfig] = None,
                           **payload):
        """Log a failure; counts toward the job's ``total_errors``."""
        self.error_count += 1
        return await self.log(level, message, source, **payload)
