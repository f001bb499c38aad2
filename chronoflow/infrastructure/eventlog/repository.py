"""
Event Log Repository - append-only audit trail of mutations

Rows are written in the same transaction as the mutation they describe,
so a rolled-back start/stop/merge leaves no trace here either.
"""
from datetime import datetime
from typing import Optional, Dict, Any, List
from sqlalchemy.orm import Session

from chronoflow.infrastructure.db.models import EventLog
from chronoflow.utils.timestamps import utcnow


class EventLogRepository:
    """
    Repository for the event_log table
    """

    def __init__(self, db: Session):
        self.db = db

    def append_event(
        self,
        account_id: int,
        event_type: str,
        payload: Dict[str, Any],
        occurred_at: Optional[datetime] = None,
        actor_user_id: Optional[int] = None,
        idempotency_key: Optional[str] = None,
    ) -> int:
        """
        Append an event to the log (flush only, the caller commits)

        Args:
            account_id: owning user id
            event_type: e.g. "time_entry_started"
            payload: JSON-serialisable event data
            occurred_at: when it happened (default: now, UTC)
            actor_user_id: who did it (None for background jobs)
            idempotency_key: optional unique key

        Returns:
            event_id

        Raises:
            IntegrityError: if idempotency_key already exists

        Example:
            >>> repo = EventLogRepository(db)
            >>> event_id = repo.append_event(
            ...     account_id=1,
            ...     event_type="time_entry_started",
            ...     payload={"entry_id": 12, "category_id": 5},
            ... )
        """
        if occurred_at is None:
            occurred_at = utcnow()

        event = EventLog(
            account_id=account_id,
            actor_user_id=actor_user_id,
            event_type=event_type,
            payload_json=payload,
            occurred_at=occurred_at,
            idempotency_key=idempotency_key,
        )

        self.db.add(event)
        self.db.flush()  # get the id without committing

        return event.id

    def list_events(
        self,
        account_id: int,
        after_id: int = 0,
        limit: int = 200,
        event_types: Optional[List[str]] = None,
    ) -> List[EventLog]:
        """
        Events with id > after_id, oldest first
        """
        query = (
            self.db.query(EventLog)
            .filter(
                EventLog.account_id == account_id,
                EventLog.id > after_id
            )
        )

        if event_types:
            query = query.filter(EventLog.event_type.in_(event_types))

        query = query.order_by(EventLog.id.asc()).limit(limit)

        return query.all()

    def count_events(
        self,
        account_id: int,
        event_types: Optional[List[str]] = None
    ) -> int:
        query = self.db.query(EventLog).filter(EventLog.account_id == account_id)

        if event_types:
            query = query.filter(EventLog.event_type.in_(event_types))

        return query.count()
