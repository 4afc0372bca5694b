"""Timestamp and duration utilities.

Simple helpers to keep time handling consistent across the engine.
"""

import math
from datetime import datetime, timezone
from typing import Optional, Union

from dateutil import parser as date_parser


SECONDS_PER_DAY = 86400


def now_utc() -> datetime:
    """Return current UTC time with timezone info.

    Always use UTC for check timestamps - comparisons stay unambiguous.
    """
    return datetime.now(timezone.utc)


def duration_ms(start: datetime, end: Optional[datetime] = None) -> float:
    """Calculate duration in milliseconds between two timestamps.

    If end is None, uses current time.
    """
    if end is None:
        end = now_utc()
    delta = end - start
    return delta.total_seconds() * 1000


def ensure_utc(dt: datetime) -> datetime:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def days_until(target: datetime, now: Optional[datetime] = None) -> int:
    """Whole days from now until target, floored.

    Negative once target has passed: one hour past is -1, not 0.
    """
    if now is None:
        now = now_utc()
    seconds = (ensure_utc(target) - ensure_utc(now)).total_seconds()
    return math.floor(seconds / SECONDS_PER_DAY)


def parse_timestamp(value: Union[str, datetime, None]) -> Optional[datetime]:
    """Parse an ISO-ish timestamp (or pass through a datetime) into aware UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    return ensure_utc(date_parser.parse(value))
