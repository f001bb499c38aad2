"""
Background scheduler - runs periodic jobs inside the FastAPI process.

Jobs:
  - Auto-stop sweep (every AUTO_STOP_SWEEP_INTERVAL_SECONDS)
"""
import logging

from apscheduler.schedulers.background import BackgroundScheduler

from chronoflow.config import get_settings
from chronoflow.infrastructure.sync.broadcaster import SyncBroadcaster

logger = logging.getLogger(__name__)

scheduler = BackgroundScheduler(daemon=True)


def _run_auto_stop_sweep(broadcaster: SyncBroadcaster | None):
    from chronoflow.infrastructure.db.session import get_session_factory
    from chronoflow.application.scheduled_stop import sweep_due_scheduled_stops

    Session = get_session_factory()
    db = Session()
    try:
        stopped = sweep_due_scheduled_stops(db, broadcaster)
        if stopped:
            logger.info("Auto-stop sweep stopped %d entr(y/ies)", stopped)
    except Exception:
        logger.exception("Auto-stop sweep job failed")
    finally:
        db.close()


def start_scheduler(broadcaster: SyncBroadcaster | None = None):
    """Start the background scheduler with all periodic jobs."""
    settings = get_settings()
    if not settings.AUTO_STOP_SWEEP_ENABLED:
        logger.info("Auto-stop sweep disabled, scheduler not started")
        return

    scheduler.add_job(
        _run_auto_stop_sweep,
        "interval",
        seconds=settings.AUTO_STOP_SWEEP_INTERVAL_SECONDS,
        args=[broadcaster],
        id="auto_stop_sweep",
        replace_existing=True,
    )

    scheduler.start()
    logger.info("Background scheduler started (auto-stop sweep every %ss)",
                settings.AUTO_STOP_SWEEP_INTERVAL_SECONDS)


def shutdown_scheduler():
    """Gracefully shut down the scheduler."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Background scheduler stopped")
