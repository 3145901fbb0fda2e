"""
Failure classification, retry/backoff policy and structured error logging.

Policy:
  - NetworkError / RateLimitError: retried with exponential backoff, then
    surfaced to the caller as source-fatal
  - ParseError / ValidationError (and 4xx responses): never retried, the
    affected item is skipped
  - ResourceError: pauses admission of new pipelines, never fails the job
"""
import asyncio
from collections import Counter
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

import aiohttp
from loguru import logger

from crawler.interfaces.news_source_interface import (
    NewsSourceError, NetworkError, RateLimitError, ParseError, ValidationError, ResourceError,
    SourceConfig,
)
from crawler.models.job_models import LogLevel

T = TypeVar('T')


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff parameters."""
    max_attempts: int = 3
    base_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 30.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must be non-negative")

    @classmethod
    def from_settings(cls, settings) -> 'RetryPolicy':
        return cls(
            max_attempts=settings.retry_max_attempts,
            base_delay=settings.retry_base_delay,
            multiplier=settings.retry_multiplier,
            max_delay=settings.retry_max_delay,
        )

    def delay_for(self, attempt: int, retry_after: Optional[float] = None) -> float:
        """Delay before retry number ``attempt`` (1-based), capped at max_delay."""
        delay = self.base_delay * (self.multiplier ** (attempt - 1))
        if retry_after is not None:
            delay = max(delay, retry_after)
        return min(delay, self.max_delay)


class ErrorHandler:
    """Classifies failures and applies the retry policy."""

    def __init__(self, policy: Optional[RetryPolicy] = None,
                 sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep):
        """
        Args:
            policy: Retry policy, defaults to 3 attempts / 1s base / x2 / 30s cap
            sleep: Awaitable used between attempts
        """
        self.policy = policy or RetryPolicy()
        self._sleep = sleep
        self.error_counts: Counter = Counter()
        self.retry_count = 0

    def classify(self, exc: BaseException, source_name: str = "") -> NewsSourceError:
        """Map any exception onto the pipeline taxonomy."""
        if isinstance(exc, NewsSourceError):
            return exc
        if isinstance(exc, asyncio.TimeoutError):
            return NetworkError(f"Timed out: {exc}", source_name=source_name, cause=exc)
        if isinstance(exc, aiohttp.ClientResponseError):
            if exc.status == 429:
                return RateLimitError(f"HTTP 429: {exc.message}", source_name=source_name, cause=exc)
            return NetworkError(f"HTTP {exc.status}: {exc.message}", source_name=source_name,
                                cause=exc, status=exc.status)
        if isinstance(exc, (aiohttp.ClientError, ConnectionError)):
            return NetworkError(f"Connection error: {exc}", source_name=source_name, cause=exc)
        if isinstance(exc, (UnicodeDecodeError, ValueError)):
            return ParseError(f"Could not parse content: {exc}", source_name=source_name, cause=exc)
        return NewsSourceError(f"Unexpected error: {exc!r}", source_name=source_name, cause=exc)

    def should_retry(self, exc: BaseException, attempt: int) -> bool:
        """Whether a failed attempt number ``attempt`` gets another try."""
        return bool(self.classify(exc).retryable) and attempt < self.policy.max_attempts

    def is_item_skippable(self, exc: BaseException) -> bool:
        """Errors that drop one item but leave the source pipeline running."""
        error = self.classify(exc)
        return not error.retryable and not isinstance(error, ResourceError)

    def is_source_fatal(self, exc: BaseException) -> bool:
        """Errors that end a source pipeline with a failed outcome."""
        error = self.classify(exc)
        return bool(error.retryable)

    async def retry(self, operation: Callable[[], Awaitable[T]], source_name: str = "",
                    description: str = "request") -> T:
        """
        Run ``operation`` applying the retry policy.

        Args:
            operation: Zero-argument coroutine factory
            source_name: Attached to raised errors
            description: Human readable label for logs

        Returns:
            The operation's result

        Raises:
            NewsSourceError: The classified error once retries are exhausted or
                the error is not retryable; ``attempts`` holds the attempt count
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                return await operation()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                error = self.classify(e, source_name)
                error.attempts = attempt
                if not self.should_retry(error, attempt):
                    if error.retryable:
                        logger.error(f"❌ {description} failed after {attempt} attempts: {error}")
                    if error is e:
                        raise
                    raise error from e

                delay = self.policy.delay_for(attempt, getattr(error, 'retry_after', None))
                self.retry_count += 1
                logger.warning(
                    f"🔄 {description} failed ({error.error_type}: {error}); "
                    f"retry {attempt}/{self.policy.max_attempts - 1} in {delay:.1f}s"
                )
                await self._sleep(delay)

    async def record(self, job_log, exc: BaseException, source: Optional[SourceConfig] = None,
                     level: Optional[LogLevel] = None, **payload) -> NewsSourceError:
        """
        Write a structured log entry for a failure.

        Item-level failures default to ``warning``, everything else to ``error``.

        Returns:
            The classified error
        """
        error = self.classify(exc, source.name if source else "")
        self.error_counts[error.error_type] += 1
        if level is None:
            fatal = self.is_source_fatal(error) or not self.is_item_skippable(error)
            level = LogLevel.ERROR if fatal else LogLevel.WARNING

        details = {
            'error_type': error.error_type,
            'retryable': bool(error.retryable),
            'attempts': error.attempts,
        }
        status = getattr(error, 'status', None)
        if status is not None:
            details['http_status'] = status
        details.update(payload)

        await job_log.record_error(level, str(error), source=source, **details)
        return error

    def get_statistics(self) -> Dict[str, Any]:
        return {
            'errors_by_type': dict(self.error_counts),
            'total_errors': sum(self.error_counts.values()),
            'retries': self.retry_count,
        }
