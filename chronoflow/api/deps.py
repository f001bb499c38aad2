"""
FastAPI dependencies (DB session, authentication, sync broadcaster)
"""
from fastapi import Depends, Request
from sqlalchemy.orm import Session

from chronoflow.auth import find_anonymous_user, get_or_create_anonymous_user, user_id_from_token
from chronoflow.domain.errors import UnauthorizedError
from chronoflow.infrastructure.db.models import User
from chronoflow.infrastructure.db.session import get_db as _get_db
from chronoflow.infrastructure.sync.broadcaster import SyncBroadcaster


# Re-export get_db for convenience
get_db = _get_db


def _bearer_token(request: Request) -> str | None:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def _known_user(db: Session, user_id) -> int | None:
    try:
        user_id = int(user_id)
    except (TypeError, ValueError):
        return None
    exists = db.query(User.id).filter(User.id == user_id).first()
    return user_id if exists else None


def resolve_user_id(db: Session, session_user_id=None, token: str | None = None,
                    anonymous_session_id: str | None = None,
                    create_anonymous: bool = True) -> int | None:
    """
    First credential that maps to an existing user wins:
    session cookie, then bearer token, then anonymous session id.

    With create_anonymous=False an unknown session id resolves to None
    instead of creating its user.
    """
    if session_user_id:
        user_id = _known_user(db, session_user_id)
        if user_id is not None:
            return user_id

    if token:
        user_id = _known_user(db, user_id_from_token(token))
        if user_id is not None:
            return user_id

    if anonymous_session_id:
        if create_anonymous:
            user = get_or_create_anonymous_user(db, anonymous_session_id)
        else:
            user = find_anonymous_user(db, anonymous_session_id)
        if user is not None:
            return user.id

    return None


def get_current_user_id(request: Request, db: Session = Depends(get_db)) -> int:
    """
    Raises:
        UnauthorizedError: no usable credential

    Usage:
        @router.get("/time-entries")
        def list_entries(user_id: int = Depends(get_current_user_id)):
            ...
    """
    session = request.scope.get("session") or {}
    user_id = resolve_user_id(
        db,
        session_user_id=session.get("user_id"),
        token=_bearer_token(request),
        anonymous_session_id=request.headers.get("X-Session-Id"),
    )
    if user_id is None:
        raise UnauthorizedError()
    return user_id


def get_broadcaster(request: Request) -> SyncBroadcaster | None:
    return getattr(request.app.state, "broadcaster", None)
