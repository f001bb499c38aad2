"""
Database engine and sessions (SQLAlchemy)

One engine per process, built lazily from DATABASE_URL. Request handlers
and the auto-stop sweep run on worker threads, so SQLite URLs (local runs,
tests) are opened with check_same_thread disabled. The app lifespan calls
dispose_engine() on shutdown; tests can swap the engine with use_engine().
"""
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker, Session

from chronoflow.config import get_settings


class Base(DeclarativeBase):
    pass


_engine: Engine | None = None
_SessionLocal: sessionmaker | None = None


def build_engine(url: str) -> Engine:
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(url, pool_pre_ping=True)


def use_engine(engine: Engine | None) -> None:
    """Install an engine (None: rebuild from settings on next use)."""
    global _engine, _SessionLocal
    _engine = engine
    _SessionLocal = None


def get_engine() -> Engine:
    global _engine
    if _engine is None:
        _engine = build_engine(get_settings().get_sqlalchemy_url())
    return _engine


def get_session_factory() -> sessionmaker:
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(bind=get_engine(), autoflush=False, autocommit=False)
    return _SessionLocal


def get_db() -> Session:
    """
    FastAPI dependency: one session per request, closed afterwards.
    The sync stream closes its session itself before streaming starts.
    """
    db = get_session_factory()()
    try:
        yield db
    finally:
        db.close()


def check_db_connection() -> None:
    """
    SELECT 1 through the configured engine (used by /ready)

    Raises:
        sqlalchemy.exc.OperationalError: if the database is unreachable
    """
    with get_engine().connect() as conn:
        conn.execute(text("SELECT 1"))


def dispose_engine() -> None:
    """Close pooled connections; the engine is rebuilt on next use."""
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None
