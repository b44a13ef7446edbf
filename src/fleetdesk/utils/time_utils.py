# src/fleetdesk/utils/time_utils.py
from datetime import datetime, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(value: Optional[datetime]) -> Optional[datetime]:
    """
    Treat naive datetimes as UTC.

    SQLite drops tzinfo on round-trip; everything we write is UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_past(value: Optional[datetime], now: Optional[datetime] = None) -> bool:
    """True when `value` is set and strictly before `now`. None never expires."""
    if value is None:
        return False
    return ensure_aware(value) < (now or utcnow())


def days_from_now(days: Optional[int], now: Optional[datetime] = None) -> Optional[datetime]:
    if days is None:
        return None
    return (now or utcnow()) + timedelta(days=days)
