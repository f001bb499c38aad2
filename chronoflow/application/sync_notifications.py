"""
Best-effort sync notification after a committed mutation.

The mutation has already been committed when this runs; a failure here is
logged and swallowed. Clients that miss an event converge on the next one
or on a manual refresh.
"""
import logging

from chronoflow.infrastructure.sync.broadcaster import SyncBroadcaster

logger = logging.getLogger(__name__)


def notify_sync(broadcaster: SyncBroadcaster | None, user_id: int, event_type: str) -> None:
    if broadcaster is None:
        return
    try:
        broadcaster.broadcast(user_id, event_type)
    except Exception:
        logger.exception("Sync broadcast failed for user_id=%s type=%s", user_id, event_type)
