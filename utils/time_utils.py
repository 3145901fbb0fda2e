"""
Datetime helpers. Everything persisted is naive UTC.
"""
import time
from datetime import datetime, timezone
from typing import Any, Optional

from dateutil import parser as date_parser
from loguru import logger


def utcnow() -> datetime:
    """Current time as a naive UTC datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Convert an aware datetime to naive UTC; naive input is assumed UTC.

    Args:
        dt: Datetime to convert, may be None

    Returns:
        Naive UTC datetime or None
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse feed/HTML date values (ISO strings, RFC 822 strings, struct_time)."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return to_naive_utc(value)
    if isinstance(value, time.struct_time):
        return datetime(*value[:6])
    try:
        return to_naive_utc(date_parser.parse(str(value)))
    except (ValueError, OverflowError) as e:
        logger.debug(f"Could not parse date {value!r}: {e}")
        return None


def isoformat(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() if dt else None
