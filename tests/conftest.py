"""
Pytest fixtures for testing
"""
import os
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

# The app module builds an app at import time; keep the sweep out of tests.
os.environ.setdefault("AUTO_STOP_SWEEP_ENABLED", "false")

from chronoflow.infrastructure.db.session import Base
from chronoflow.infrastructure.db.models import User, Category
from chronoflow.infrastructure.locks import UserLockRegistry
from chronoflow.infrastructure.sync.broadcaster import SyncBroadcaster


class FakeClock:
    """Injectable "now" for use cases"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def db_engine():
    """In-memory SQLite shared by every thread of the test (StaticPool)."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(bind=db_engine)


@pytest.fixture
def db_session(session_factory) -> Session:
    """Create database session for tests"""
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def user(db_session) -> User:
    u = User(email="owner@example.com")
    db_session.add(u)
    db_session.commit()
    return u


@pytest.fixture
def other_user(db_session) -> User:
    u = User(email="other@example.com")
    db_session.add(u)
    db_session.commit()
    return u


@pytest.fixture
def work(db_session, user) -> Category:
    c = Category(user_id=user.id, name="Work", color="#ef4444")
    db_session.add(c)
    db_session.commit()
    return c


@pytest.fixture
def personal(db_session, user) -> Category:
    c = Category(user_id=user.id, name="Personal", color="#22c55e")
    db_session.add(c)
    db_session.commit()
    return c


@pytest.fixture
def foreign_category(db_session, other_user) -> Category:
    c = Category(user_id=other_user.id, name="Work", color="#000000")
    db_session.add(c)
    db_session.commit()
    return c


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 15, 9, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def locks():
    return UserLockRegistry()


@pytest.fixture
def broadcaster():
    b = SyncBroadcaster(heartbeat_seconds=30.0, queue_size=100)
    b.init()
    yield b
    b.shutdown()
