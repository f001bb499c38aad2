"""
UTC helpers. Everything stored in the database is UTC.

SQLite hands back naive datetimes even for TIMESTAMP(timezone=True)
columns, so values read from the store go through as_utc() before any
arithmetic or comparison.
"""
from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Naive -> assumed UTC; aware -> converted to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def epoch_millis(value: datetime | None = None) -> int:
    if value is None:
        value = utcnow()
    return int(as_utc(value).timestamp() * 1000)
