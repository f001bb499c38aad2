"""
SQLAlchemy ORM models
"""
from datetime import datetime
from sqlalchemy import (
    String, Integer, Text, TIMESTAMP, JSON, ForeignKey, UniqueConstraint, Index, func, text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.dialects.postgresql import JSONB

from chronoflow.infrastructure.db.session import Base


class User(Base):
    """
    User record. Credentials live with the auth collaborator; anonymous
    sessions are stored as users with an ``anon_<session id>@local`` email.
    """
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        nullable=False
    )


class EventLog(Base):
    """
    Append-only audit log of every time entry / category mutation
    """
    __tablename__ = "event_log"

    id: Mapped[int] = mapped_column(primary_key=True)
    account_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    actor_user_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    event_type: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    payload_json: Mapped[dict] = mapped_column(JSON().with_variant(JSONB(), "postgresql"), nullable=False)

    occurred_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        index=True
    )
    idempotency_key: Mapped[str | None] = mapped_column(
        String(255),
        unique=True,
        nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        nullable=False
    )


class Category(Base):
    """
    Category owned by one user. Referenced read-only by time entries.
    """
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    color: Mapped[str | None] = mapped_column(String(32), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        nullable=False
    )

    __table_args__ = (
        UniqueConstraint('user_id', 'name', name='uq_categories_user_name'),
    )


class TimeEntry(Base):
    """
    Time entry. ``end_time IS NULL`` marks the user's single active timer.

    duration_minutes is derived from start_time/end_time and is only ever
    written through chronoflow.domain.time_entry.duration_minutes.
    """
    __tablename__ = "time_entries"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    category_id: Mapped[int] = mapped_column(Integer, ForeignKey("categories.id"), nullable=False, index=True)

    task_name: Mapped[str | None] = mapped_column(Text, nullable=True)

    start_time: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    end_time: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    scheduled_end_time: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    duration_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        nullable=False
    )

    category: Mapped[Category] = relationship(Category, lazy="joined", viewonly=True)

    __table_args__ = (
        Index('ix_time_entries_user_start', 'user_id', 'start_time'),
        Index('ix_time_entries_user_task', 'user_id', 'task_name'),
        # Second line of defence for the single-active-entry rule
        Index(
            'uq_time_entries_one_open_per_user', 'user_id',
            unique=True,
            postgresql_where=text('end_time IS NULL'),
            sqlite_where=text('end_time IS NULL'),
        ),
    )
