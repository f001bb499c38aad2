"""
Identity helpers: bearer tokens and anonymous session users.

Issuing credentials (login, signup) is handled elsewhere; this module only
verifies what a client presents and maps it to a user id.
"""
import re
import uuid
from datetime import datetime, timedelta, timezone

from jose import jwt, JWTError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from chronoflow.config import get_settings
from chronoflow.infrastructure.db.models import User

_SESSION_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,128}$")


def create_access_token(user_id: int, expires_minutes: int | None = None) -> str:
    settings = get_settings()
    minutes = expires_minutes if expires_minutes is not None else settings.ACCESS_TOKEN_EXPIRE_MINUTES
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=minutes)).timestamp()),
        "jti": uuid.uuid4().hex,
        "token_type": "access",
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.TOKEN_ALGORITHM)


def decode_token(token: str) -> dict | None:
    settings = get_settings()
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.TOKEN_ALGORITHM])
    except JWTError:
        return None


def user_id_from_token(token: str) -> int | None:
    payload = decode_token(token)
    if not payload:
        return None
    try:
        return int(payload.get("sub"))
    except (TypeError, ValueError):
        return None


def get_user_by_email(db: Session, email: str) -> User | None:
    return db.query(User).filter(User.email == email).first()


def anonymous_email(session_id: str) -> str:
    return f"anon_{session_id}@local"


def find_anonymous_user(db: Session, session_id: str) -> User | None:
    """Existing user of an anonymous session; never creates one."""
    if not session_id or not _SESSION_ID_RE.match(session_id):
        return None
    return get_user_by_email(db, anonymous_email(session_id))


def get_or_create_anonymous_user(db: Session, session_id: str) -> User | None:
    """
    User backing an anonymous browser session. Returns None for a malformed
    session id.
    """
    if not session_id or not _SESSION_ID_RE.match(session_id):
        return None

    user = find_anonymous_user(db, session_id)
    if user is not None:
        return user

    email = anonymous_email(session_id)
    try:
        user = User(email=email)
        db.add(user)
        db.commit()
    except IntegrityError:
        # created by a concurrent request for the same session
        db.rollback()
        return get_user_by_email(db, email)
    return user
