"""
Same-event identity resolution.

Economic events reach us from several data sources that spell the same
attributes differently (name / Name / canonicalName, currency / Currency,
time / date / epochMs ...). resolve_identity() reduces any of those shapes to
an EventIdentity so that "NFP USD on 2026-02-06" is one event no matter who
reported it.

Identity is anchored on the *original* scheduled time when present, so a
rescheduled event keeps its date key and everything attached to it.
"""
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Callable, Sequence


# Ordered alias lists per logical attribute. The first populated field wins.
ID_FIELDS = (
    "id", "eventId", "event_id", "eventID", "EventID", "EventId", "Event_ID",
    "uid", "uuid", "_id", "docId",
)
NAME_FIELDS = (
    "name", "Name", "title", "Title", "eventName", "eventTitle",
    "headline", "displayName", "canonicalName",
)
ALIAS_LIST_FIELDS = ("aliases", "alias", "alternativeNames")
CURRENCY_FIELDS = ("currency", "Currency")
TIME_FIELDS = (
    "originalDatetimeUtc", "time", "date", "Date", "dateTime", "datetime",
    "date_time", "epochMs", "eventEpochMs",
)
EXPLICIT_ID_FIELDS = ("seriesId", "docId", "_id")


def field_value(event: Any, name: str) -> Any:
    """Read one field from a mapping or an attribute-bearing object."""
    if event is None:
        return None
    if isinstance(event, dict):
        return event.get(name)
    return getattr(event, name, None)


def first_populated(event: Any, names: Sequence[str]) -> Any:
    for name in names:
        value = field_value(event, name)
        if value not in (None, "", [], {}):
            return value
    return None


def normalize_key(value: Any) -> str | None:
    """Trim + lowercase; empty -> None."""
    if value is None or value is False:
        return None
    text = str(value).strip().lower()
    return text or None


def _dedupe_keys(values: list[Any]) -> list[str]:
    seen: dict[str, None] = {}
    for value in values:
        key = normalize_key(value)
        if key and key not in seen:
            seen[key] = None
    return list(seen)


def _extract_name_keys(event: Any) -> list[str]:
    candidates: list[Any] = [field_value(event, name) for name in NAME_FIELDS]
    for list_field in ALIAS_LIST_FIELDS:
        extra = field_value(event, list_field)
        if isinstance(extra, (list, tuple)):
            candidates.extend(extra)
    return _dedupe_keys(candidates)


def parse_instant(value: Any) -> datetime | None:
    """
    Parse a loosely-typed time value into an aware UTC datetime.

    Accepts datetime/date objects, epoch milliseconds and ISO-8601 strings.
    Naive values are taken as UTC. Returns None when nothing usable is found.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.lstrip("-").isdigit():
            return parse_instant(int(text))
        if text.endswith("Z") or text.endswith("z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
        return parse_instant(parsed)
    return None


def _date_key(event: Any) -> str | None:
    for name in TIME_FIELDS:
        instant = parse_instant(field_value(event, name))
        if instant is not None:
            return instant.strftime("%Y-%m-%d")
    return None


@dataclass(frozen=True)
class EventIdentity:
    event_id: str | None
    primary_name_key: str | None
    name_keys: tuple[str, ...]
    currency_key: str | None
    date_key: str | None
    is_custom: bool = False
    has_explicit_id: bool = False

    @property
    def is_resolved(self) -> bool:
        """False for the degenerate identity; such events must never be matched."""
        return self.primary_name_key is not None

    @property
    def composite_key(self) -> str | None:
        """name-currency-date (or name-currency without a date) for non-custom events."""
        if self.is_custom or self.has_explicit_id:
            return None
        if self.primary_name_key and self.currency_key and self.date_key:
            return f"{self.primary_name_key}-{self.currency_key}-{self.date_key}"
        if self.primary_name_key and self.currency_key:
            return f"{self.primary_name_key}-{self.currency_key}"
        return None

    @property
    def match_tuple(self) -> tuple[str | None, str | None, str | None]:
        return (self.primary_name_key, self.currency_key, self.date_key)


def resolve_identity(event: Any) -> EventIdentity:
    """Derive the canonical identity of an event-like record. Pure, never raises."""
    if event is None:
        event = {}
    raw_id = first_populated(event, ID_FIELDS)
    name_keys = _extract_name_keys(event)
    return EventIdentity(
        event_id=str(raw_id) if raw_id is not None else None,
        primary_name_key=name_keys[0] if name_keys else None,
        name_keys=tuple(name_keys),
        currency_key=normalize_key(first_populated(event, CURRENCY_FIELDS)),
        date_key=_date_key(event),
        is_custom=bool(field_value(event, "isCustom")),
        has_explicit_id=first_populated(event, EXPLICIT_ID_FIELDS) is not None,
    )


def is_same_event(a: EventIdentity, b: EventIdentity) -> bool:
    """
    Decide whether two identities describe the same real-world event.

    Fails closed: an unresolved identity never matches anything, including
    another unresolved identity.
    """
    if not a.is_resolved or not b.is_resolved:
        return False
    if a.event_id and a.event_id == b.event_id:
        return True
    if not set(a.name_keys) & set(b.name_keys):
        return False
    return a.currency_key == b.currency_key and a.date_key == b.date_key


def find_matching(identity: EventIdentity, candidates: Sequence[Any],
                  resolver: Callable[[Any], EventIdentity] = resolve_identity) -> list[Any]:
    """Return the candidates whose identity matches the given one."""
    return [item for item in candidates if is_same_event(identity, resolver(item))]
