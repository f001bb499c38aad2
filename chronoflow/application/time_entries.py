"""Time entry use cases - the active timer lifecycle

A user has at most one open entry (end_time IS NULL). Start, stop, update
and delete run inside the user's critical section so that the
read-close-insert sequence of "start" cannot interleave with another
request of the same user.
"""
import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from chronoflow.config import get_settings
from chronoflow.domain.errors import InvalidArgumentError, InvalidCategoryError, NotFoundError
from chronoflow.domain.time_entry import TimeEntry as TimeEntryDomain, derived_duration, ensure_valid_time_range
from chronoflow.infrastructure.categories.repository import CategoryRepository
from chronoflow.infrastructure.db.models import Category, TimeEntry
from chronoflow.infrastructure.eventlog.repository import EventLogRepository
from chronoflow.infrastructure.locks import UserLockRegistry, user_locks
from chronoflow.infrastructure.sync.broadcaster import SyncBroadcaster
from chronoflow.infrastructure.sync.wire import SYNC_TYPE_TIME_ENTRIES
from chronoflow.infrastructure.timeentries.repository import TimeEntryRepository
from chronoflow.application.sync_notifications import notify_sync
from chronoflow.utils.timestamps import as_utc, utcnow
from chronoflow.utils.validation import normalize_task_name, parse_int_param

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 100
DEFAULT_FILTERED_LIST_LIMIT = 1000
MAX_LIST_LIMIT = 5000
DEFAULT_SUGGESTION_LIMIT = 10
MAX_SUGGESTION_LIMIT = 100


class TimeEntryUseCase:
    """Shared wiring: repositories, clock, per-user locks and the sync broadcaster."""

    def __init__(
        self,
        db: Session,
        broadcaster: SyncBroadcaster | None = None,
        clock: Callable[[], datetime] = utcnow,
        locks: UserLockRegistry = user_locks,
    ):
        self.db = db
        self.entries = TimeEntryRepository(db)
        self.categories = CategoryRepository(db)
        self.event_repo = EventLogRepository(db)
        self.broadcaster = broadcaster
        self.clock = clock
        self.locks = locks

    def _now(self) -> datetime:
        return as_utc(self.clock())

    def _require_category(self, user_id: int, category_id) -> Category:
        try:
            category_id = int(category_id)
        except (TypeError, ValueError):
            raise InvalidCategoryError()
        category = self.categories.find(user_id, category_id)
        if category is None:
            raise InvalidCategoryError()
        return category

    def _task_name(self, value) -> str | None:
        try:
            return normalize_task_name(value, get_settings().TASK_NAME_MAX_LENGTH)
        except ValueError as e:
            raise InvalidArgumentError(str(e))

    def _commit(self) -> None:
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def _notify(self, user_id: int) -> None:
        notify_sync(self.broadcaster, user_id, SYNC_TYPE_TIME_ENTRIES)


def close_entry(entry: TimeEntry, end_time: datetime) -> None:
    """Close an open entry: end_time, derived duration, schedule cleared."""
    entry.end_time = end_time
    entry.duration_minutes = derived_duration(as_utc(entry.start_time), end_time)
    entry.scheduled_end_time = None


class StartTimeEntryUseCase(TimeEntryUseCase):

    def execute(self, user_id: int, category_id, task_name: str | None = None,
                actor_user_id: int | None = None) -> TimeEntry:
        if category_id is None or category_id == "":
            raise InvalidArgumentError("Category is required")
        task_name = self._task_name(task_name)
        category = self._require_category(user_id, category_id)

        with self.locks.hold(user_id):
            try:
                entry = self._start(user_id, category.id, task_name, actor_user_id)
            except IntegrityError:
                # Another process opened an entry between our read and insert
                logger.warning("Concurrent start detected for user_id=%s, retrying", user_id)
                entry = self._start(user_id, category.id, task_name, actor_user_id)

        logger.info("Time entry started: entry_id=%s user_id=%s", entry.id, user_id)
        self._notify(user_id)
        return entry

    def _start(self, user_id: int, category_id: int, task_name: str | None,
               actor_user_id: int | None) -> TimeEntry:
        now = self._now()
        try:
            closed_id = None
            active = self.entries.find_open(user_id)
            if active is not None:
                close_entry(active, now)
                self.db.flush()
                closed_id = active.id
                self.event_repo.append_event(
                    account_id=user_id,
                    event_type="time_entry_stopped",
                    payload=TimeEntryDomain.stopped(active.id, now, active.duration_minutes),
                    occurred_at=now,
                    actor_user_id=actor_user_id,
                )

            entry = self.entries.add(TimeEntry(
                user_id=user_id,
                category_id=category_id,
                task_name=task_name,
                start_time=now,
                end_time=None,
                scheduled_end_time=None,
                duration_minutes=None,
            ))
            self.event_repo.append_event(
                account_id=user_id,
                event_type="time_entry_started",
                payload=TimeEntryDomain.started(entry.id, category_id, task_name, now, closed_id),
                occurred_at=now,
                actor_user_id=actor_user_id,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(entry)
        return entry


class StopTimeEntryUseCase(TimeEntryUseCase):

    def execute(self, user_id: int, entry_id: int, actor_user_id: int | None = None) -> TimeEntry:
        with self.locks.hold(user_id):
            entry = self.entries.find_open_by_id(user_id, entry_id)
            if entry is None:
                raise NotFoundError("Active entry not found")

            now = self._now()
            close_entry(entry, now)
            self.event_repo.append_event(
                account_id=user_id,
                event_type="time_entry_stopped",
                payload=TimeEntryDomain.stopped(entry.id, now, entry.duration_minutes),
                occurred_at=now,
                actor_user_id=actor_user_id,
            )
            self._commit()

        self.db.refresh(entry)
        logger.info("Time entry stopped: entry_id=%s user_id=%s duration=%s",
                    entry.id, user_id, entry.duration_minutes)
        self._notify(user_id)
        return entry


class UpdateTimeEntryUseCase(TimeEntryUseCase):
    """
    Partial update.

    start_time / category_id / task_name: None or omitted keeps the current
    value. end_time is replaced when passed (None reopens the entry) and
    kept when omitted (the default ``...``). task_name="" clears the name.
    """

    def execute(
        self,
        user_id: int,
        entry_id: int,
        category_id=None,
        task_name=None,
        start_time: datetime | None = None,
        end_time=...,
        actor_user_id: int | None = None,
    ) -> TimeEntry:
        if category_id is not None:
            category_id = self._require_category(user_id, category_id).id

        clear_task_name = isinstance(task_name, str) and task_name.strip() == ""
        new_task_name = None if clear_task_name else self._task_name(task_name)

        with self.locks.hold(user_id):
            entry = self.entries.find(user_id, entry_id)
            if entry is None:
                raise NotFoundError("Entry not found")

            new_start = as_utc(start_time) if start_time is not None else as_utc(entry.start_time)
            new_end = as_utc(entry.end_time) if end_time is ... else as_utc(end_time)
            ensure_valid_time_range(new_start, new_end)

            if new_end is None and entry.end_time is not None:
                other = self.entries.find_open(user_id)
                if other is not None and other.id != entry.id:
                    raise InvalidArgumentError("Another time entry is already active")

            changes = {}
            if category_id is not None:
                entry.category_id = category_id
                changes["category_id"] = category_id
            if clear_task_name:
                entry.task_name = None
                changes["task_name"] = None
            elif new_task_name is not None:
                entry.task_name = new_task_name
                changes["task_name"] = new_task_name
            if start_time is not None:
                entry.start_time = new_start
                changes["start_time"] = new_start
            if end_time is not ...:
                entry.end_time = new_end
                changes["end_time"] = new_end

            entry.duration_minutes = derived_duration(new_start, new_end)
            changes["duration_minutes"] = entry.duration_minutes
            if new_end is not None:
                entry.scheduled_end_time = None

            self.event_repo.append_event(
                account_id=user_id,
                event_type="time_entry_updated",
                payload=TimeEntryDomain.updated(entry.id, **changes),
                occurred_at=self._now(),
                actor_user_id=actor_user_id,
            )
            try:
                self._commit()
            except IntegrityError:
                raise InvalidArgumentError("Another time entry is already active")

        self.db.refresh(entry)
        logger.info("Time entry updated: entry_id=%s user_id=%s", entry.id, user_id)
        self._notify(user_id)
        return entry


class CreateTimeEntryUseCase(TimeEntryUseCase):
    """Manual (backfill) entry: both timestamps given, created closed."""

    def execute(
        self,
        user_id: int,
        category_id,
        start_time: datetime | None,
        end_time: datetime | None,
        task_name: str | None = None,
        actor_user_id: int | None = None,
    ) -> TimeEntry:
        if category_id in (None, "") or start_time is None or end_time is None:
            raise InvalidArgumentError("Category, start time, and end time are required")
        task_name = self._task_name(task_name)
        category = self._require_category(user_id, category_id)

        start_time, end_time = as_utc(start_time), as_utc(end_time)
        ensure_valid_time_range(start_time, end_time)
        duration = derived_duration(start_time, end_time)

        entry = self.entries.add(TimeEntry(
            user_id=user_id,
            category_id=category.id,
            task_name=task_name,
            start_time=start_time,
            end_time=end_time,
            scheduled_end_time=None,
            duration_minutes=duration,
        ))
        self.event_repo.append_event(
            account_id=user_id,
            event_type="time_entry_created",
            payload=TimeEntryDomain.created(entry.id, category.id, task_name, start_time, end_time, duration),
            occurred_at=self._now(),
            actor_user_id=actor_user_id,
        )
        self._commit()

        self.db.refresh(entry)
        logger.info("Manual time entry created: entry_id=%s user_id=%s", entry.id, user_id)
        self._notify(user_id)
        return entry


class DeleteTimeEntryUseCase(TimeEntryUseCase):

    def execute(self, user_id: int, entry_id: int, actor_user_id: int | None = None) -> None:
        with self.locks.hold(user_id):
            entry = self.entries.find(user_id, entry_id)
            if entry is None:
                raise NotFoundError("Entry not found")

            was_active = entry.end_time is None
            self.entries.delete(entry)
            self.event_repo.append_event(
                account_id=user_id,
                event_type="time_entry_deleted",
                payload=TimeEntryDomain.deleted(entry_id, was_active),
                occurred_at=self._now(),
                actor_user_id=actor_user_id,
            )
            self._commit()

        logger.info("Time entry deleted: entry_id=%s user_id=%s", entry_id, user_id)
        self._notify(user_id)


class DeleteTimeEntriesByDateUseCase(TimeEntryUseCase):
    """Delete the closed entries that started on one UTC calendar day."""

    def execute(self, user_id: int, day: date, actor_user_id: int | None = None) -> int:
        start_of_day = datetime.combine(day, time.min, tzinfo=timezone.utc)
        end_of_day = start_of_day + timedelta(days=1)

        with self.locks.hold(user_id):
            deleted = self.entries.delete_closed_between(user_id, start_of_day, end_of_day)
            if deleted == 0:
                self.db.rollback()
                raise NotFoundError("No completed entries found for this date")

            self.event_repo.append_event(
                account_id=user_id,
                event_type="time_entries_deleted_by_date",
                payload=TimeEntryDomain.deleted_by_date(day, deleted),
                occurred_at=self._now(),
                actor_user_id=actor_user_id,
            )
            self._commit()

        logger.info("Time entries deleted by date: date=%s count=%d user_id=%s", day, deleted, user_id)
        self._notify(user_id)
        return deleted


# === Queries ===

def get_active_time_entry(db: Session, user_id: int) -> Optional[TimeEntry]:
    return TimeEntryRepository(db).find_open(user_id)


def list_time_entries(
    db: Session,
    user_id: int,
    limit=None,
    offset=None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    category_id=None,
    search: str | None = None,
) -> List[TimeEntry]:
    """
    Entries newest first. Without filters the default page is 100 rows;
    with any filter it is 1000 (a date range usually wants everything).
    """
    try:
        start = as_utc(start_date)
        end = as_utc(end_date)
        category = parse_int_param(category_id, "categoryId", None, minimum=1)
        filtered = any(v is not None for v in (start, end, category)) or bool(search)
        default_limit = DEFAULT_FILTERED_LIST_LIMIT if filtered else DEFAULT_LIST_LIMIT
        page_size = min(parse_int_param(limit, "limit", default_limit, minimum=1), MAX_LIST_LIMIT)
        page_offset = parse_int_param(offset, "offset", 0)
    except ValueError as e:
        raise InvalidArgumentError(str(e))

    return TimeEntryRepository(db).list_entries(
        user_id,
        limit=page_size,
        offset=page_offset,
        start_date=start,
        end_date=end,
        category_id=category,
        search=search.strip() if search else None,
    )


def list_task_suggestions(db: Session, user_id: int, category_id=None, q: str | None = None, limit=None) -> List[dict]:
    """Previously used task names, most used first"""
    try:
        category = parse_int_param(category_id, "categoryId", None, minimum=1)
        size = min(parse_int_param(limit, "limit", DEFAULT_SUGGESTION_LIMIT, minimum=1), MAX_SUGGESTION_LIMIT)
    except ValueError as e:
        raise InvalidArgumentError(str(e))

    rows = TimeEntryRepository(db).suggestions(user_id, category, (q or "").strip() or None, size)
    return [
        {
            "task_name": row.task_name,
            "categoryId": row.category_id,
            "count": row.use_count,
            "totalMinutes": int(row.total_minutes or 0),
            "lastUsed": as_utc(row.last_used),
        }
        for row in rows
    ]
