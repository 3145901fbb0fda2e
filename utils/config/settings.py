"""
Runtime settings for the Newswire pipeline.

All values come from environment variables (a local .env file is loaded
first). Every knob has a conservative default so the pipeline runs without
any configuration against a local SQLite database.
"""
import os
from dataclasses import dataclass
from typing import Optional
from loguru import logger
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
DEFAULT_SOURCES_PATH = os.path.join(PROJECT_ROOT, 'config', 'sources.yaml')
DEFAULT_DATABASE_URL = f"sqlite:///{os.path.join(PROJECT_ROOT, 'data', 'newswire.db')}"


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == '':
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"⚠️ Invalid integer for {name}: {value!r}, using {default}")
        return default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value == '':
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning(f"⚠️ Invalid number for {name}: {value!r}, using {default}")
        return default


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == '':
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


@dataclass
class Settings:
    """Pipeline configuration assembled from the environment."""
    database_url: str = DEFAULT_DATABASE_URL
    sources_config_path: str = DEFAULT_SOURCES_PATH

    # Job orchestration
    max_concurrent_sources: int = 3
    default_articles_per_source: int = 3
    source_failure_ratio: float = 1.0
    admission_recheck_seconds: float = 1.0

    # Duplicate detection
    url_cache_size: int = 50000

    # Retry policy
    retry_max_attempts: int = 3
    retry_base_delay: float = 1.0
    retry_multiplier: float = 2.0
    retry_max_delay: float = 30.0

    # Resource monitor
    monitor_interval_seconds: float = 30.0
    memory_warning_mb: float = 256.0
    memory_critical_mb: float = 512.0
    storage_warning_mb: float = 500.0
    storage_critical_mb: float = 800.0
    storage_high_water_mb: float = 700.0

    # Cleanup
    cleanup_policy: str = 'default'
    cleanup_interval_hours: float = 24.0
    job_retention_days: int = 14

    # Logging and API
    log_level: str = 'INFO'
    log_file: Optional[str] = None
    api_host: str = '0.0.0.0'
    api_port: int = 8000
    seed_sources: bool = True

    def __post_init__(self):
        if self.max_concurrent_sources < 0:
            raise ValueError("max_concurrent_sources must be non-negative")
        if self.retry_max_attempts < 1:
            raise ValueError("retry_max_attempts must be at least 1")
        if not 0 < self.source_failure_ratio <= 1:
            raise ValueError("source_failure_ratio must be in (0, 1]")
        if self.url_cache_size < 1:
            raise ValueError("url_cache_size must be at least 1")

    @classmethod
    def from_env(cls) -> 'Settings':
        """Build settings from environment variables."""
        return cls(
            database_url=os.getenv('DATABASE_URL', DEFAULT_DATABASE_URL),
            sources_config_path=os.getenv('SOURCES_CONFIG_PATH', DEFAULT_SOURCES_PATH),
            max_concurrent_sources=_env_int('MAX_CONCURRENT_SOURCES', 3),
            default_articles_per_source=_env_int('DEFAULT_ARTICLES_PER_SOURCE', 3),
            source_failure_ratio=_env_float('SOURCE_FAILURE_RATIO', 1.0),
            admission_recheck_seconds=_env_float('ADMISSION_RECHECK_SECONDS', 1.0),
            url_cache_size=_env_int('URL_CACHE_SIZE', 50000),
            retry_max_attempts=_env_int('RETRY_MAX_ATTEMPTS', 3),
            retry_base_delay=_env_float('RETRY_BASE_DELAY_SECONDS', 1.0),
            retry_multiplier=_env_float('RETRY_BACKOFF_MULTIPLIER', 2.0),
            retry_max_delay=_env_float('RETRY_MAX_DELAY_SECONDS', 30.0),
            monitor_interval_seconds=_env_float('MONITOR_INTERVAL_SECONDS', 30.0),
            memory_warning_mb=_env_float('MEMORY_WARNING_MB', 256.0),
            memory_critical_mb=_env_float('MEMORY_CRITICAL_MB', 512.0),
            storage_warning_mb=_env_float('STORAGE_WARNING_MB', 500.0),
            storage_critical_mb=_env_float('STORAGE_CRITICAL_MB', 800.0),
            storage_high_water_mb=_env_float('STORAGE_HIGH_WATER_MB', 700.0),
            cleanup_policy=os.getenv('CLEANUP_POLICY', 'default'),
            cleanup_interval_hours=_env_float('CLEANUP_INTERVAL_HOURS', 24.0),
            job_retention_days=_env_int('JOB_RETENTION_DAYS', 14),
            log_level=os.getenv('LOG_LEVEL', 'INFO').upper(),
            log_file=os.getenv('LOG_FILE') or None,
            api_host=os.getenv('API_HOST', '0.0.0.0'),
            api_port=_env_int('PORT', 8000),
            seed_sources=_env_bool('SEED_SOURCES', True),
        )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the process-wide settings, loading them on first use."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
        logger.debug(f"Settings loaded (database: {_settings.database_url})")
    return _settings


def reset_settings() -> None:
    """Forget cached settings so the next call re-reads the environment."""
    global _settings
    _settings = None
