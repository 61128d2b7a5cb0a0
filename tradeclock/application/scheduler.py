"""
Background scheduler, runs periodic jobs inside the FastAPI process.

Jobs:
  - Reminder dispatcher (every minute)
  - Trigger ledger cleanup (03:15 UTC)
"""
import logging
from datetime import datetime, timedelta, timezone

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

logger = logging.getLogger(__name__)

scheduler = BackgroundScheduler(daemon=True)

TRIGGER_RETENTION_DAYS = 30


def _run_reminders():
    from tradeclock.infrastructure.db.session import get_session_factory
    from tradeclock.application.reminder_dispatcher import dispatch_due_reminders

    Session = get_session_factory()
    db = Session()
    try:
        dispatch_due_reminders(db)
    except Exception:
        logger.exception("Reminder dispatch job failed")
    finally:
        db.close()


def purge_old_triggers(db, now: datetime | None = None) -> int:
    """Delete trigger ledger rows older than the retention window. Returns rows removed."""
    from tradeclock.infrastructure.db.models import NotificationTriggerModel

    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(days=TRIGGER_RETENTION_DAYS)
    deleted = db.query(NotificationTriggerModel).filter(
        NotificationTriggerModel.created_at < cutoff
    ).delete()
    db.commit()
    return deleted


def _run_trigger_cleanup():
    from tradeclock.infrastructure.db.session import get_session_factory

    Session = get_session_factory()
    db = Session()
    try:
        deleted = purge_old_triggers(db)
        logger.info("Trigger cleanup removed %d row(s)", deleted)
    except Exception:
        logger.exception("Trigger cleanup job failed")
    finally:
        db.close()


def start_scheduler():
    """Start the background scheduler with all periodic jobs."""
    scheduler.add_job(
        _run_reminders,
        "interval",
        minutes=1,
        id="reminders",
        replace_existing=True,
    )

    scheduler.add_job(
        _run_trigger_cleanup,
        CronTrigger(hour=3, minute=15),
        id="trigger_cleanup",
        replace_existing=True,
    )

    scheduler.start()
    logger.info("Scheduler started: reminders (every 1 min), trigger_cleanup (03:15 UTC)")


def shutdown_scheduler():
    """Gracefully stop the scheduler."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
