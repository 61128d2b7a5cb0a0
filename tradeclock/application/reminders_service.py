"""
Reminder persistence (plain CRUD, one row per user + event key).

Every write re-normalizes the record, so whatever the dialog sends, the
stored reminders list is sorted, capped and has explicit channel flags.
Listeners registered on a ReminderChangeFeed are told about added /
modified / removed records, which is how live views stay in sync.
"""
import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Callable

from sqlalchemy.orm import Session

from tradeclock.domain.keys import encode_doc_id
from tradeclock.domain.recurrence import RecurrenceDefinition
from tradeclock.domain.reminder_record import ReminderRecord, normalize_event_for_reminder
from tradeclock.infrastructure.db.models import NotificationTriggerModel, ReminderModel

logger = logging.getLogger(__name__)

ChangeListener = Callable[[str, ReminderRecord], None]


class ReminderValidationError(ValueError):
    pass


class ReminderChangeFeed:
    """In-process change notifications, one listener list per user."""

    def __init__(self):
        self._listeners: dict[int, list[ChangeListener]] = defaultdict(list)

    def subscribe(self, user_id: int, listener: ChangeListener) -> Callable[[], None]:
        self._listeners[user_id].append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners.get(user_id, []):
                self._listeners[user_id].remove(listener)

        return unsubscribe

    def publish(self, user_id: int, change_type: str, record: ReminderRecord) -> None:
        for listener in list(self._listeners.get(user_id, [])):
            try:
                listener(change_type, record)
            except Exception:
                logger.exception("Reminder listener failed (user_id=%s, change=%s)", user_id, change_type)


def _row_to_record(row: ReminderModel) -> ReminderRecord:
    return ReminderRecord.from_document({
        "userId": row.user_id,
        "eventKey": row.event_key,
        "eventSource": row.event_source,
        "eventEpochMs": row.event_epoch_ms,
        "title": row.title,
        "impact": row.impact,
        "timezone": row.timezone,
        "reminders": row.reminders,
        "enabled": row.enabled,
        "scope": row.scope,
        "seriesKey": row.series_key,
        "metadata": row.meta,
    })


def _normalize_payload(user_id: int, payload: Any, existing: ReminderRecord | None = None) -> ReminderRecord:
    """
    Already-keyed payloads keep their key and are applied over the stored
    record (partial updates); raw events get full normalization.
    """
    if isinstance(payload, ReminderRecord):
        return payload.with_reminders(list(payload.reminders))
    if not isinstance(payload, dict):
        raise ReminderValidationError("Reminder payload must be an object")
    if payload.get("metadata") is not None and not isinstance(payload["metadata"], dict):
        raise ReminderValidationError("Reminder metadata must be an object")

    if payload.get("eventKey"):
        base = existing.to_document() if existing else {}
        metadata = {**(base.get("metadata") or {}), **(payload.get("metadata") or {})}
        if metadata.get("recurrence"):
            metadata["recurrence"] = RecurrenceDefinition.from_dict(metadata["recurrence"]).to_dict()
        doc = {
            **base,
            **payload,
            "userId": user_id,
            "scope": payload.get("scope") or metadata.get("scope") or base.get("scope") or "event",
            "metadata": metadata,
        }
        return ReminderRecord.from_document(doc)

    return normalize_event_for_reminder(
        event=payload,
        source=payload.get("eventSource"),
        user_id=user_id,
        reminders=payload.get("reminders"),
        enabled=payload.get("enabled") is not False,
        metadata=payload.get("metadata"),
        scope=payload.get("scope") or "event",
    )


class RemindersService:
    def __init__(self, db: Session, feed: ReminderChangeFeed | None = None):
        self.db = db
        self.feed = feed

    def _find(self, user_id: int, event_key: str) -> ReminderModel | None:
        return self.db.query(ReminderModel).filter(
            ReminderModel.user_id == user_id,
            ReminderModel.doc_id == encode_doc_id(event_key),
        ).first()

    def subscribe(self, user_id: int, listener: ChangeListener) -> Callable[[], None]:
        """Register a change listener for one user's reminders. Returns the unsubscribe function."""
        if self.feed is None:
            self.feed = ReminderChangeFeed()
        return self.feed.subscribe(user_id, listener)

    def _publish(self, user_id: int, change_type: str, record: ReminderRecord) -> None:
        if self.feed is not None:
            self.feed.publish(user_id, change_type, record)

    def upsert(self, user_id: int | None, payload: Any) -> str:
        """Create or merge a reminder record. Returns its event key."""
        if not user_id:
            raise ReminderValidationError("User must be authenticated to save reminders")
        existing = None
        if isinstance(payload, dict) and payload.get("eventKey"):
            existing = self.get(user_id, payload["eventKey"])
        record = _normalize_payload(user_id, payload, existing)
        if not record.event_key:
            raise ReminderValidationError("Unable to determine reminder identifier")

        now = datetime.now(timezone.utc)
        row = self._find(user_id, record.event_key)
        is_new = row is None
        if is_new:
            row = ReminderModel(
                user_id=user_id,
                doc_id=encode_doc_id(record.event_key),
                created_at=now,
            )
            self.db.add(row)
            merged_meta = dict(record.metadata)
        else:
            merged_meta = {**(row.meta or {}), **record.metadata}

        row.event_key = record.event_key
        row.series_key = record.series_key or None
        row.series_id = merged_meta.get("seriesId")
        row.event_source = record.event_source
        row.scope = record.scope
        row.event_epoch_ms = record.event_epoch_ms
        row.title = record.title
        row.impact = record.impact
        row.timezone = record.timezone
        row.reminders = [r.to_dict() for r in record.reminders]
        row.channels = record.channels.to_dict()
        row.enabled = record.enabled
        row.meta = merged_meta
        row.updated_at = now
        self.db.commit()

        logger.info("Reminder %s for user_id=%s: %s", "created" if is_new else "updated", user_id, record.event_key)
        self._publish(user_id, "added" if is_new else "modified", _row_to_record(row))
        return record.event_key

    def get(self, user_id: int, event_key: str) -> ReminderRecord | None:
        row = self._find(user_id, event_key)
        return _row_to_record(row) if row else None

    def list_for_user(self, user_id: int, enabled_only: bool = False) -> list[ReminderRecord]:
        """Newest update first."""
        query = self.db.query(ReminderModel).filter(ReminderModel.user_id == user_id)
        if enabled_only:
            query = query.filter(ReminderModel.enabled == True)
        rows = query.order_by(ReminderModel.updated_at.desc(), ReminderModel.id.desc()).all()
        return [_row_to_record(row) for row in rows]

    def delete(self, user_id: int, event_key: str) -> bool:
        row = self._find(user_id, event_key)
        if row is None:
            logger.warning("Reminder delete skipped, not found: user_id=%s key=%s", user_id, event_key)
            return False
        record = _row_to_record(row)
        self.db.delete(row)
        self.db.commit()
        self._publish(user_id, "removed", record)
        return True

    def delete_for_series(self, user_id: int, series_id: str) -> int:
        """Remove every reminder of a deleted custom event. Returns the number removed."""
        rows = self.db.query(ReminderModel).filter(
            ReminderModel.user_id == user_id,
            ReminderModel.series_id == series_id,
        ).all()
        records = [_row_to_record(row) for row in rows]
        for row in rows:
            self.db.delete(row)
        self.db.commit()
        for record in records:
            self._publish(user_id, "removed", record)
        return len(records)

    # --- trigger ledger ---

    def has_trigger(self, user_id: int, trigger_id: str) -> bool:
        return self.db.query(NotificationTriggerModel).filter(
            NotificationTriggerModel.user_id == user_id,
            NotificationTriggerModel.trigger_id == trigger_id,
        ).first() is not None

    def record_trigger(self, user_id: int | None, trigger_id: str, payload: dict | None = None) -> bool:
        """
        Record a client-side (in-app / browser) trigger. Push triggers belong
        to the server dispatcher and are refused. Returns True when written.
        """
        payload = dict(payload or {})
        channel = payload.get("channel") or "inApp"
        if channel == "push":
            logger.warning("Refusing client push trigger write: %s", trigger_id)
            return False
        if not user_id:
            return False
        if self.has_trigger(user_id, trigger_id):
            return False
        self.db.add(NotificationTriggerModel(
            user_id=user_id,
            trigger_id=trigger_id,
            event_key=payload.get("eventKey"),
            channel=channel,
            occurrence_epoch_ms=payload.get("occurrenceEpochMs"),
            minutes_before=payload.get("minutesBefore"),
            sent_at_ms=payload.get("sentAtMs"),
            payload=payload,
        ))
        self.db.commit()
        return True
