"""TimeEntry domain rules - duration derivation and event payloads"""
import math
from datetime import date, datetime
from typing import Dict, Any

from chronoflow.domain.errors import InvalidTimeRangeError
from chronoflow.utils.timestamps import as_utc, utcnow


def duration_minutes(start: datetime, end: datetime) -> int:
    """
    Elapsed whole minutes between two instants, rounded half-up.

    30s -> 1, 29s -> 0, 90s -> 2, -90s -> -1. Negative values are returned
    as-is; callers decide whether to reject them.
    """
    seconds = (as_utc(end) - as_utc(start)).total_seconds()
    return math.floor(seconds / 60 + 0.5)


def ensure_valid_time_range(start: datetime, end: datetime | None) -> None:
    """End before start is rejected; end == start is a valid zero-length entry."""
    if end is not None and as_utc(end) < as_utc(start):
        raise InvalidTimeRangeError()


def derived_duration(start: datetime, end: datetime | None) -> int | None:
    if end is None:
        return None
    return duration_minutes(start, end)


class TimeEntry:
    @staticmethod
    def started(entry_id: int, category_id: int, task_name: str | None, start_time: datetime,
                closed_entry_id: int | None = None) -> Dict[str, Any]:
        return {
            "entry_id": entry_id,
            "category_id": category_id,
            "task_name": task_name,
            "start_time": as_utc(start_time).isoformat(),
            "closed_entry_id": closed_entry_id,
        }

    @staticmethod
    def stopped(entry_id: int, end_time: datetime, duration: int) -> Dict[str, Any]:
        return {
            "entry_id": entry_id,
            "end_time": as_utc(end_time).isoformat(),
            "duration_minutes": duration,
        }

    @staticmethod
    def auto_stopped(entry_id: int, end_time: datetime, duration: int) -> Dict[str, Any]:
        return {
            "entry_id": entry_id,
            "end_time": as_utc(end_time).isoformat(),
            "duration_minutes": duration,
            "stopped_at": utcnow().isoformat(),
        }

    @staticmethod
    def created(entry_id: int, category_id: int, task_name: str | None,
                start_time: datetime, end_time: datetime, duration: int) -> Dict[str, Any]:
        return {
            "entry_id": entry_id,
            "category_id": category_id,
            "task_name": task_name,
            "start_time": as_utc(start_time).isoformat(),
            "end_time": as_utc(end_time).isoformat(),
            "duration_minutes": duration,
        }

    @staticmethod
    def updated(entry_id: int, **changes) -> Dict[str, Any]:
        """Sparse payload: only the fields that were supplied."""
        payload: Dict[str, Any] = {"entry_id": entry_id, "updated_at": utcnow().isoformat()}
        for key in ("category_id", "task_name", "start_time", "end_time", "duration_minutes"):
            if key in changes:
                value = changes[key]
                payload[key] = as_utc(value).isoformat() if isinstance(value, datetime) else value
        return payload

    @staticmethod
    def deleted(entry_id: int, was_active: bool) -> Dict[str, Any]:
        return {"entry_id": entry_id, "was_active": was_active}

    @staticmethod
    def deleted_by_date(day: date, count: int) -> Dict[str, Any]:
        return {"date": day.isoformat(), "deleted": count}

    @staticmethod
    def stop_scheduled(entry_id: int, scheduled_end_time: datetime) -> Dict[str, Any]:
        return {"entry_id": entry_id, "scheduled_end_time": as_utc(scheduled_end_time).isoformat()}

    @staticmethod
    def schedule_cleared(entry_id: int) -> Dict[str, Any]:
        return {"entry_id": entry_id, "cleared_at": utcnow().isoformat()}
