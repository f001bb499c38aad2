"""
Scheduled auto-stop: a stop instant attached to the open entry.

Clients are expected to stop the timer themselves when the instant is
reached; sweep_due_scheduled_stops() is the server-side backstop for
entries nobody is watching. Either way the entry ends at the scheduled
instant, not at the moment the stop is noticed.
"""
import logging
from datetime import datetime
from typing import Callable, Dict, List

from sqlalchemy.orm import Session

from chronoflow.application.sync_notifications import notify_sync
from chronoflow.application.time_entries import TimeEntryUseCase, close_entry
from chronoflow.domain.errors import InvalidArgumentError, NotFoundError
from chronoflow.domain.time_entry import TimeEntry as TimeEntryDomain
from chronoflow.infrastructure.db.models import TimeEntry
from chronoflow.infrastructure.eventlog.repository import EventLogRepository
from chronoflow.infrastructure.locks import UserLockRegistry, user_locks
from chronoflow.infrastructure.sync.broadcaster import SyncBroadcaster
from chronoflow.infrastructure.sync.wire import SYNC_TYPE_TIME_ENTRIES
from chronoflow.infrastructure.timeentries.repository import TimeEntryRepository
from chronoflow.utils.timestamps import as_utc, utcnow

logger = logging.getLogger(__name__)


class ScheduleStopUseCase(TimeEntryUseCase):

    def execute(self, user_id: int, entry_id: int, scheduled_end_time: datetime | None,
                actor_user_id: int | None = None) -> TimeEntry:
        if scheduled_end_time is None:
            raise InvalidArgumentError("scheduledEndTime is required")
        scheduled = as_utc(scheduled_end_time)

        with self.locks.hold(user_id):
            entry = self.entries.find_open_by_id(user_id, entry_id)
            if entry is None:
                raise NotFoundError("Active entry not found")

            now = self._now()
            if scheduled <= now:
                raise InvalidArgumentError("Scheduled end time must be in the future")

            entry.scheduled_end_time = scheduled
            self.event_repo.append_event(
                account_id=user_id,
                event_type="time_entry_stop_scheduled",
                payload=TimeEntryDomain.stop_scheduled(entry.id, scheduled),
                occurred_at=now,
                actor_user_id=actor_user_id,
            )
            self._commit()

        self.db.refresh(entry)
        logger.info("Auto-stop scheduled: entry_id=%s user_id=%s at=%s", entry.id, user_id, scheduled)
        self._notify(user_id)
        return entry


class ClearScheduleUseCase(TimeEntryUseCase):

    def execute(self, user_id: int, entry_id: int, actor_user_id: int | None = None) -> TimeEntry:
        with self.locks.hold(user_id):
            entry = self.entries.find_open_by_id(user_id, entry_id)
            if entry is None:
                raise NotFoundError("Active entry not found")

            if entry.scheduled_end_time is None:
                return entry

            entry.scheduled_end_time = None
            self.event_repo.append_event(
                account_id=user_id,
                event_type="time_entry_schedule_cleared",
                payload=TimeEntryDomain.schedule_cleared(entry.id),
                occurred_at=self._now(),
                actor_user_id=actor_user_id,
            )
            self._commit()

        self.db.refresh(entry)
        logger.info("Auto-stop cleared: entry_id=%s user_id=%s", entry.id, user_id)
        self._notify(user_id)
        return entry


def sweep_due_scheduled_stops(
    db: Session,
    broadcaster: SyncBroadcaster | None = None,
    now: datetime | None = None,
    clock: Callable[[], datetime] = utcnow,
    locks: UserLockRegistry = user_locks,
) -> int:
    """
    Stop every open entry whose scheduled_end_time has passed.

    end_time = scheduled_end_time (never before start_time). Each user's
    entries are closed inside that user's critical section and re-read
    there first, so a stop, edit or reschedule that landed after the
    candidate list was taken wins. One commit and one broadcast per
    affected user. Returns the number of entries stopped.
    """
    now = as_utc(now) if now is not None else as_utc(clock())
    repo = TimeEntryRepository(db)
    event_repo = EventLogRepository(db)

    candidates: Dict[int, List[int]] = {}
    for entry in repo.list_due_scheduled(now):
        candidates.setdefault(entry.user_id, []).append(entry.id)

    stopped = 0
    for user_id, entry_ids in candidates.items():
        closed: List[int] = []
        with locks.hold(user_id):
            try:
                for entry_id in entry_ids:
                    entry = repo.find_due_by_id(user_id, entry_id, now)
                    if entry is None:
                        continue
                    start = as_utc(entry.start_time)
                    end = max(as_utc(entry.scheduled_end_time), start)
                    close_entry(entry, end)
                    event_repo.append_event(
                        account_id=user_id,
                        event_type="time_entry_auto_stopped",
                        payload=TimeEntryDomain.auto_stopped(entry.id, end, entry.duration_minutes),
                        occurred_at=now,
                    )
                    closed.append(entry.id)
                db.commit()
            except Exception:
                db.rollback()
                raise

        if closed:
            logger.info("Auto-stopped entries %s for user_id=%s", closed, user_id)
            notify_sync(broadcaster, user_id, SYNC_TYPE_TIME_ENTRIES)
            stopped += len(closed)

    return stopped
