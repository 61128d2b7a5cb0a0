"""ReminderRecord - the normalized, persistable reminder unit."""
from dataclasses import dataclass, field, replace
from typing import Any

from tradeclock.domain.identity import first_populated, parse_instant, resolve_identity
from tradeclock.domain.keys import (
    build_event_key,
    build_series_key,
    resolve_category,
    resolve_currency,
    resolve_impact,
    resolve_source,
    resolve_title,
    TIMEZONE_FIELDS,
)
from tradeclock.domain.recurrence import DEFAULT_TIMEZONE, RecurrenceDefinition, to_epoch_ms
from tradeclock.domain.reminders import (
    Reminder,
    ReminderChannels,
    aggregate_channels,
    normalize_reminders,
)


VALID_SCOPES = frozenset({"event", "series"})
EPOCH_FIELDS = ("eventEpochMs", "epochMs")
EVENT_TIME_FIELDS = ("datetimeUtc", "time", "date", "Date", "dateTime", "datetime", "date_time")

# metadata keys copied from the event when the caller does not supply them
_METADATA_FROM_EVENT = (
    "description", "customColor", "customIcon", "seriesId", "localDate", "localTime",
)


@dataclass(frozen=True)
class ReminderRecord:
    event_key: str
    series_key: str
    event_source: str = "unknown"
    scope: str = "event"
    event_epoch_ms: int | None = None
    title: str = "Event reminder"
    impact: str = "unknown"
    timezone: str = DEFAULT_TIMEZONE
    reminders: tuple[Reminder, ...] = ()
    channels: ReminderChannels = field(default_factory=ReminderChannels)
    enabled: bool = True
    user_id: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def recurrence(self) -> RecurrenceDefinition:
        return RecurrenceDefinition.from_dict(self.metadata.get("recurrence"))

    def with_reminders(self, raw_reminders: Any) -> "ReminderRecord":
        reminders = normalize_reminders(raw_reminders)
        return replace(self, reminders=tuple(reminders), channels=aggregate_channels(reminders))

    def to_document(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "eventKey": self.event_key,
            "eventSource": self.event_source,
            "eventEpochMs": self.event_epoch_ms,
            "title": self.title,
            "impact": self.impact,
            "timezone": self.timezone,
            "reminders": [r.to_dict() for r in self.reminders],
            "channels": self.channels.to_dict(),
            "enabled": self.enabled,
            "scope": self.scope,
            "seriesKey": self.series_key,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "ReminderRecord":
        """Rebuild from a stored document, re-normalizing reminders and channels."""
        reminders = normalize_reminders(doc.get("reminders") or [])
        metadata = dict(doc["metadata"]) if isinstance(doc.get("metadata"), dict) else {}
        scope = doc["scope"] if isinstance(doc.get("scope"), str) and doc["scope"] in VALID_SCOPES else "event"
        return cls(
            event_key=doc.get("eventKey") or "",
            series_key=doc.get("seriesKey") or "",
            event_source=doc.get("eventSource") or "unknown",
            scope=scope,
            event_epoch_ms=_coerce_epoch(doc.get("eventEpochMs")),
            title=doc.get("title") or "Event reminder",
            impact=doc.get("impact") or "unknown",
            timezone=doc.get("timezone") or DEFAULT_TIMEZONE,
            reminders=tuple(reminders),
            channels=aggregate_channels(reminders),
            enabled=doc.get("enabled") is not False,
            user_id=doc.get("userId"),
            metadata=metadata,
        )


def _coerce_epoch(value: Any) -> int | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return int(value)
    return None


def resolve_event_epoch_ms(event: Any) -> int | None:
    """Current (possibly rescheduled) instant of an event, in epoch ms."""
    epoch = _coerce_epoch(first_populated(event, EPOCH_FIELDS))
    if epoch is not None:
        return epoch
    for name in EVENT_TIME_FIELDS:
        instant = parse_instant(first_populated(event, (name,)))
        if instant is not None:
            return to_epoch_ms(instant)
    return None


def _pick(metadata: dict[str, Any], event: Any, key: str, default: Any = None) -> Any:
    if metadata.get(key) is not None:
        return metadata[key]
    value = first_populated(event, (key,))
    return value if value is not None else default


def normalize_event_for_reminder(
    event: Any,
    source: str | None = None,
    user_id: int | None = None,
    reminders: Any = None,
    enabled: bool = True,
    metadata: dict[str, Any] | None = None,
    scope: str = "event",
) -> ReminderRecord:
    """
    Turn an event-like record plus raw dialog state into a ReminderRecord.

    For scope="series" the record is keyed by the series key, so all
    occurrences of the recurring definition share one record.
    """
    event = event if event is not None else {}
    metadata = dict(metadata) if isinstance(metadata, dict) else {}

    event_source = source or resolve_source(event)
    identity = resolve_identity(event)
    epoch_ms = resolve_event_epoch_ms(event)
    title = resolve_title(event)
    timezone = str(first_populated(event, TIMEZONE_FIELDS) or metadata.get("timezone") or DEFAULT_TIMEZONE)

    if reminders is None:
        reminders = first_populated(event, ("reminders",)) or []
    normalized = normalize_reminders(reminders)

    currency = metadata.get("currency") or resolve_currency(event)
    category = metadata.get("category") or resolve_category(event)
    impact = resolve_impact(event)
    series_key = build_series_key(identity, event_source, currency=currency, impact=impact, category=category)

    resolved_scope = metadata.get("scope") or scope or "event"
    if not isinstance(resolved_scope, str) or resolved_scope not in VALID_SCOPES:
        resolved_scope = "event"
    if resolved_scope == "series":
        event_key = series_key
    else:
        event_key = build_event_key(identity, event_source, epoch_ms, title)

    recurrence_raw = metadata.get("recurrence") or first_populated(event, ("recurrence",))
    out_metadata = {
        **metadata,
        "scope": resolved_scope,
        "currency": currency,
        "category": category,
        "showOnClock": _pick(metadata, event, "showOnClock"),
        "isCustom": bool(_pick(metadata, event, "isCustom", False)),
        "recurrence": RecurrenceDefinition.from_dict(recurrence_raw).to_dict() if recurrence_raw else None,
    }
    for key in _METADATA_FROM_EVENT:
        out_metadata[key] = _pick(metadata, event, key)

    return ReminderRecord(
        event_key=event_key,
        series_key=series_key,
        event_source=event_source,
        scope=resolved_scope,
        event_epoch_ms=epoch_ms,
        title=title,
        impact=impact,
        timezone=timezone,
        reminders=tuple(normalized),
        channels=aggregate_channels(normalized),
        enabled=bool(enabled),
        user_id=user_id,
        metadata=out_metadata,
    )
