"""
Reminder dispatcher: expands saved reminders and sends due push notifications.

Usage (cron / systemd timer / manual):
    python -m tradeclock.application.reminder_dispatcher

Or call dispatch_due_reminders(db) from your own scheduler.

The window only looks back ([now - window_back, now]): a push is never sent
before its reminder time. The trigger ledger makes re-runs idempotent.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import func
from sqlalchemy.orm import Session

from tradeclock.application.push_service import send_push_to_user
from tradeclock.application.reminders_service import RemindersService
from tradeclock.config import Settings, get_settings
from tradeclock.domain.keys import build_trigger_id
from tradeclock.domain.policy import (
    day_key_for_timezone,
    is_throttled,
    is_within_quiet_hours,
    quiet_hours_label,
)
from tradeclock.domain.recurrence import expand_occurrences
from tradeclock.domain.reminder_record import ReminderRecord
from tradeclock.infrastructure.db.models import (
    NotificationStatsModel,
    NotificationTriggerModel,
    PushSubscription,
    UserNotificationSettings,
)

logger = logging.getLogger(__name__)

PUSH_CHANNEL = "push"


@dataclass
class DispatchResult:
    sent: int = 0
    duplicates: int = 0
    quiet_hours: int = 0
    throttled: int = 0
    capped_users: int = 0


def _now_ms() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)


def _push_body(title: str, minutes_before: int) -> str:
    if minutes_before == 0:
        return f"🔔 {title} is starting now!"
    return f"⏰ {minutes_before} min before • {title}"


def _quiet_hours_for(settings: Settings, user_settings: UserNotificationSettings | None) -> dict[str, int]:
    quiet = settings.quiet_hours
    if user_settings and user_settings.quiet_start_hour is not None and user_settings.quiet_end_hour is not None:
        quiet = {"start": user_settings.quiet_start_hour, "end": user_settings.quiet_end_hour}
    return quiet


def _get_stats(db: Session, user_id: int, day_key: str) -> NotificationStatsModel:
    stats = db.query(NotificationStatsModel).filter_by(user_id=user_id, day_key=day_key).first()
    if stats is None:
        stats = NotificationStatsModel(user_id=user_id, day_key=day_key, count=0)
        db.add(stats)
        db.flush()
    return stats


def _last_push_ms(db: Session, user_id: int, event_key: str) -> int | None:
    return db.query(func.max(NotificationTriggerModel.sent_at_ms)).filter(
        NotificationTriggerModel.user_id == user_id,
        NotificationTriggerModel.event_key == event_key,
        NotificationTriggerModel.channel == PUSH_CHANNEL,
    ).scalar()


def _dispatch_record(
    db: Session,
    user_id: int,
    record: ReminderRecord,
    now_ms: int,
    settings: Settings,
    stats: NotificationStatsModel,
    result: DispatchResult,
) -> None:
    window_start = now_ms - settings.REMINDER_WINDOW_BACK_SECONDS * 1000
    range_end = now_ms + settings.REMINDER_LOOKAHEAD_HOURS * 3600 * 1000
    max_lead_ms = max((r.minutes_before for r in record.reminders), default=0) * 60 * 1000

    # an occurrence up to max lead time ahead can already be due
    occurrences = expand_occurrences(record, window_start, max(range_end, now_ms + max_lead_ms))
    if not occurrences:
        return
    logger.debug("%d occurrence(s) for %s", len(occurrences), record.event_key)

    for occurrence in occurrences:
        for reminder in record.reminders:
            if not reminder.channels.push:
                continue
            reminder_at = occurrence.occurrence_epoch_ms - int(reminder.minutes_before * 60 * 1000)
            if not (window_start <= reminder_at <= now_ms):
                continue

            if stats.count >= settings.PUSH_DAILY_CAP:
                return

            trigger_id = build_trigger_id(record.event_key, occurrence.occurrence_epoch_ms,
                                          reminder.minutes_before, PUSH_CHANNEL)
            exists = db.query(NotificationTriggerModel.id).filter_by(
                user_id=user_id, trigger_id=trigger_id,
            ).first()
            if exists:
                result.duplicates += 1
                continue

            if is_throttled(_last_push_ms(db, user_id, record.event_key), now_ms, settings.THROTTLE_WINDOW_MS):
                logger.info("Throttled push for %s (user_id=%s)", record.event_key, user_id)
                result.throttled += 1
                continue

            db.add(NotificationTriggerModel(
                user_id=user_id,
                trigger_id=trigger_id,
                event_key=record.event_key,
                channel=PUSH_CHANNEL,
                occurrence_epoch_ms=occurrence.occurrence_epoch_ms,
                minutes_before=reminder.minutes_before,
                sent_at_ms=now_ms,
                payload={},
            ))
            stats.count += 1
            db.commit()

            title = record.title or "Reminder"
            tag = f"t2t-{record.event_key}"
            delivered = send_push_to_user(db, user_id, {
                "title": title,
                "body": _push_body(title, reminder.minutes_before),
                "url": "/calendar",
                "tag": tag,
                "data": {
                    "eventKey": record.event_key,
                    "eventSource": record.event_source,
                    "occurrenceEpochMs": str(occurrence.occurrence_epoch_ms),
                    "minutesBefore": str(reminder.minutes_before),
                },
            })
            logger.info("Push for %s delivered to %d device(s) (user_id=%s)", record.event_key, delivered, user_id)
            result.sent += 1


def _dispatch_user(db: Session, user_id: int, now_ms: int, settings: Settings, result: DispatchResult) -> None:
    user_settings = db.query(UserNotificationSettings).filter_by(user_id=user_id).first()
    if user_settings is not None and not user_settings.enabled:
        return

    records = [r for r in RemindersService(db).list_for_user(user_id, enabled_only=True) if r.channels.push]
    if not records:
        return

    stats_tz = (user_settings.timezone if user_settings else None) or settings.TIMEZONE
    stats = _get_stats(db, user_id, day_key_for_timezone(now_ms, stats_tz))
    quiet = _quiet_hours_for(settings, user_settings)

    for record in records:
        if stats.count >= settings.PUSH_DAILY_CAP:
            logger.info("Daily push cap reached (%d) for user_id=%s", settings.PUSH_DAILY_CAP, user_id)
            result.capped_users += 1
            break
        if settings.QUIET_HOURS_ENABLED and is_within_quiet_hours(now_ms, record.timezone, quiet):
            logger.info("Skipping %s, within quiet hours (%s)", record.event_key, quiet_hours_label(quiet))
            result.quiet_hours += 1
            continue
        _dispatch_record(db, user_id, record, now_ms, settings, stats, result)

    stats.updated_at = datetime.now(timezone.utc)
    db.commit()


def dispatch_due_reminders(db: Session, now_ms: int | None = None) -> DispatchResult:
    """
    Send push notifications for every reminder that came due in the look-back window.

    `now_ms` is the clock (epoch ms); defaults to the current time.
    """
    settings = get_settings()
    now_ms = _now_ms() if now_ms is None else now_ms
    result = DispatchResult()

    user_ids = [row[0] for row in db.query(PushSubscription.user_id).distinct().all()]
    logger.info("Reminder dispatch started for %d user(s)", len(user_ids))

    for user_id in user_ids:
        try:
            _dispatch_user(db, user_id, now_ms, settings, result)
        except Exception:
            db.rollback()
            logger.exception("Reminder dispatch failed for user_id=%s", user_id)

    return result


# ── CLI entry point ──
if __name__ == "__main__":
    from tradeclock.infrastructure.db.session import get_session_factory
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")

    SessionLocal = get_session_factory()
    db = SessionLocal()
    try:
        outcome = dispatch_due_reminders(db)
        logger.info("Dispatched %d push notification(s)", outcome.sent)
    finally:
        db.close()
