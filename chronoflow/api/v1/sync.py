"""
Live sync endpoints

GET /sync is a Server-Sent Events stream. EventSource cannot send headers,
so the credential comes in the query string (token or sessionId).
"""
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from chronoflow.api.deps import get_broadcaster, get_current_user_id, get_db, resolve_user_id
from chronoflow.domain.errors import UnauthorizedError
from chronoflow.infrastructure.sync.broadcaster import SyncBroadcaster


router = APIRouter(prefix="/sync", tags=["sync"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def resolve_stream_user(
    request: Request,
    token: Optional[str] = None,
    sessionId: Optional[str] = None,
    db: Session = Depends(get_db),
) -> int:
    """
    A token, when given, is the only credential tried. A session id must
    belong to an anonymous user created earlier by a regular request.
    """
    session = request.scope.get("session") or {}
    user_id = resolve_user_id(
        db,
        session_user_id=session.get("user_id"),
        token=token,
        anonymous_session_id=None if token else sessionId,
        create_anonymous=False,
    )
    # the stream can stay open for hours; give the connection back to the pool now
    db.close()
    if user_id is None:
        raise UnauthorizedError()
    return user_id


@router.get("")
async def sync_stream(
    request: Request,
    user_id: int = Depends(resolve_stream_user),
    broadcaster: SyncBroadcaster | None = Depends(get_broadcaster),
):
    """Push stream of `connected` / `sync` frames for the calling user"""
    if broadcaster is None or not broadcaster.running:
        raise RuntimeError("Sync broadcaster is not running")

    connection = broadcaster.open_connection(user_id)
    return StreamingResponse(
        broadcaster.stream(connection, is_disconnected=request.is_disconnected),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.get("/status")
def sync_status(
    user_id: int = Depends(get_current_user_id),
    broadcaster: SyncBroadcaster | None = Depends(get_broadcaster),
):
    if broadcaster is None:
        return {"totalClients": 0, "userClients": 0, "eventCounter": 0}
    return broadcaster.status(user_id)
