"""
Time Entry Repository - the only place that queries time_entries

Every method takes the owning user_id and filters by it, so an entry of
another user can never be read or changed through this class, whatever
id the caller passes. The one exception is list_due_scheduled(), used by
the background sweep, which is not reachable from any request.
"""
from datetime import datetime
from typing import List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from chronoflow.infrastructure.db.models import TimeEntry, Category


class TimeEntryRepository:

    def __init__(self, db: Session):
        self.db = db

    # --- single entries ---------------------------------------------------

    def find(self, user_id: int, entry_id: int) -> Optional[TimeEntry]:
        return self.db.query(TimeEntry).filter(
            TimeEntry.id == entry_id,
            TimeEntry.user_id == user_id,
        ).first()

    def find_open(self, user_id: int) -> Optional[TimeEntry]:
        return self.db.query(TimeEntry).filter(
            TimeEntry.user_id == user_id,
            TimeEntry.end_time.is_(None),
        ).first()

    def find_open_by_id(self, user_id: int, entry_id: int) -> Optional[TimeEntry]:
        return self.db.query(TimeEntry).filter(
            TimeEntry.id == entry_id,
            TimeEntry.user_id == user_id,
            TimeEntry.end_time.is_(None),
        ).first()

    def add(self, entry: TimeEntry) -> TimeEntry:
        self.db.add(entry)
        self.db.flush()
        return entry

    def delete(self, entry: TimeEntry) -> None:
        self.db.delete(entry)
        self.db.flush()

    # --- listing ----------------------------------------------------------

    def list_entries(
        self,
        user_id: int,
        limit: int,
        offset: int = 0,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        category_id: Optional[int] = None,
        search: Optional[str] = None,
    ) -> List[TimeEntry]:
        query = (
            self.db.query(TimeEntry)
            .join(Category, Category.id == TimeEntry.category_id)
            .filter(TimeEntry.user_id == user_id)
        )

        if start_date is not None:
            query = query.filter(TimeEntry.start_time >= start_date)
        if end_date is not None:
            query = query.filter(TimeEntry.start_time <= end_date)
        if category_id:
            query = query.filter(TimeEntry.category_id == category_id)
        if search:
            needle = search.lower()
            query = query.filter(or_(
                func.lower(TimeEntry.task_name).contains(needle, autoescape=True),
                func.lower(Category.name).contains(needle, autoescape=True),
            ))

        return (
            query.order_by(TimeEntry.start_time.desc(), TimeEntry.id.desc())
            .limit(limit)
            .offset(offset)
            .all()
        )

    def suggestions(self, user_id: int, category_id: Optional[int], q: Optional[str], limit: int) -> List:
        """
        Task names the user has used before, grouped by (task_name, category_id)

        Returns rows of (task_name, category_id, use_count, total_minutes, last_used)
        """
        count_col = func.count(TimeEntry.id)
        total_col = func.coalesce(func.sum(TimeEntry.duration_minutes), 0)

        query = self.db.query(
            TimeEntry.task_name,
            TimeEntry.category_id,
            count_col.label("use_count"),
            total_col.label("total_minutes"),
            func.max(TimeEntry.start_time).label("last_used"),
        ).filter(
            TimeEntry.user_id == user_id,
            TimeEntry.task_name.isnot(None),
            TimeEntry.task_name != "",
        )

        if category_id:
            query = query.filter(TimeEntry.category_id == category_id)
        if q:
            query = query.filter(func.lower(TimeEntry.task_name).contains(q.lower(), autoescape=True))

        return (
            query.group_by(TimeEntry.task_name, TimeEntry.category_id)
            .order_by(count_col.desc(), total_col.desc())
            .limit(limit)
            .all()
        )

    # --- bulk operations --------------------------------------------------

    def delete_closed_between(self, user_id: int, start: datetime, end: datetime) -> int:
        """Delete closed entries with start <= start_time < end. Open entries are never touched."""
        return self.db.query(TimeEntry).filter(
            TimeEntry.user_id == user_id,
            TimeEntry.start_time >= start,
            TimeEntry.start_time < end,
            TimeEntry.end_time.isnot(None),
        ).delete(synchronize_session="fetch")

    def count_by_task_names(self, user_id: int, task_names: List[str]) -> int:
        if not task_names:
            return 0
        return self.db.query(TimeEntry).filter(
            TimeEntry.user_id == user_id,
            TimeEntry.task_name.in_(task_names),
        ).count()

    def rewrite_task_names(self, user_id: int, task_names: List[str], new_task_name: str,
                           new_category_id: Optional[int] = None) -> int:
        values = {TimeEntry.task_name: new_task_name}
        if new_category_id is not None:
            values[TimeEntry.category_id] = new_category_id
        return self.db.query(TimeEntry).filter(
            TimeEntry.user_id == user_id,
            TimeEntry.task_name.in_(task_names),
        ).update(values, synchronize_session="fetch")

    def count_by_task_name_and_category(self, user_id: int, task_name: str, category_id: int) -> int:
        return self.db.query(TimeEntry).filter(
            TimeEntry.user_id == user_id,
            TimeEntry.task_name == task_name,
            TimeEntry.category_id == category_id,
        ).count()

    def rewrite_task_name_and_category(self, user_id: int, old_task_name: str, old_category_id: int,
                                       new_task_name: str, new_category_id: int) -> int:
        return self.db.query(TimeEntry).filter(
            TimeEntry.user_id == user_id,
            TimeEntry.task_name == old_task_name,
            TimeEntry.category_id == old_category_id,
        ).update(
            {TimeEntry.task_name: new_task_name, TimeEntry.category_id: new_category_id},
            synchronize_session="fetch",
        )

    def count_for_category(self, user_id: int, category_id: int) -> int:
        return self.db.query(TimeEntry).filter(
            TimeEntry.user_id == user_id,
            TimeEntry.category_id == category_id,
        ).count()

    def reassign_category(self, user_id: int, from_category_id: int, to_category_id: int) -> int:
        return self.db.query(TimeEntry).filter(
            TimeEntry.user_id == user_id,
            TimeEntry.category_id == from_category_id,
        ).update({TimeEntry.category_id: to_category_id}, synchronize_session="fetch")

    # --- background sweep -------------------------------------------------

    def list_due_scheduled(self, now: datetime) -> List[TimeEntry]:
        """Open entries (all users) whose scheduled_end_time has passed"""
        return self.db.query(TimeEntry).filter(
            TimeEntry.end_time.is_(None),
            TimeEntry.scheduled_end_time.isnot(None),
            TimeEntry.scheduled_end_time <= now,
        ).order_by(TimeEntry.user_id.asc()).all()

    def find_due_by_id(self, user_id: int, entry_id: int, now: datetime) -> Optional[TimeEntry]:
        """
        Re-read one due entry from the database, overwriting whatever this
        session already holds for it. None once it was stopped or rescheduled.
        """
        return self.db.query(TimeEntry).filter(
            TimeEntry.id == entry_id,
            TimeEntry.user_id == user_id,
            TimeEntry.end_time.is_(None),
            TimeEntry.scheduled_end_time.isnot(None),
            TimeEntry.scheduled_end_time <= now,
        ).populate_existing().first()
