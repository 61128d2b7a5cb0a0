"""
Recurring reminder expansion.

Given a reminder record (anchor instant + timezone + recurrence definition in
metadata) and a query window, produce the concrete firing instants inside the
window. Deterministic: the clock is never read here.

Interval families:
- sub-day (5m, 15m, 30m, 1h, 4h): fixed millisecond step from the anchor
- day/week (1D, 1W): local calendar date + local wall-clock time, so a DST
  change keeps the wall-clock time instead of the UTC instant
- month/quarter/year (1M, 1Q, 1Y): whole months, day-of-month clamped to
  the last day of shorter months

Ends:
- never
- onDate: nothing after 23:59:59.999 local time on untilLocalDate
- after:  at most `count` logical occurrences counted from the anchor,
          whatever range is queried
"""
import calendar
import math
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


DEFAULT_TIMEZONE = "America/New_York"
DEFAULT_MAX_OCCURRENCES = 5000

_MINUTE_MS = 60 * 1000
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

VALID_END_TYPES = frozenset({"never", "onDate", "after"})


@dataclass(frozen=True)
class IntervalSpec:
    """One row of the interval table shared by the expander and the policy engine."""
    code: str
    unit: str
    step_ms: int | None = None
    step_days: int = 0
    step_months: int = 0
    occurrences_per_day: float = 1.0

    @property
    def is_sub_day(self) -> bool:
        return self.step_ms is not None


INTERVALS: dict[str, IntervalSpec] = {
    "5m": IntervalSpec("5m", "minute", step_ms=5 * _MINUTE_MS, occurrences_per_day=288),
    "15m": IntervalSpec("15m", "minute", step_ms=15 * _MINUTE_MS, occurrences_per_day=96),
    "30m": IntervalSpec("30m", "minute", step_ms=30 * _MINUTE_MS, occurrences_per_day=48),
    "1h": IntervalSpec("1h", "hour", step_ms=60 * _MINUTE_MS, occurrences_per_day=24),
    "4h": IntervalSpec("4h", "hour", step_ms=4 * 60 * _MINUTE_MS, occurrences_per_day=6),
    "1D": IntervalSpec("1D", "day", step_days=1, occurrences_per_day=1),
    "1W": IntervalSpec("1W", "week", step_days=7, occurrences_per_day=1 / 7),
    "1M": IntervalSpec("1M", "month", step_months=1, occurrences_per_day=1 / 30),
    "1Q": IntervalSpec("1Q", "quarter", step_months=3, occurrences_per_day=1 / 90),
    "1Y": IntervalSpec("1Y", "year", step_months=12, occurrences_per_day=1 / 365),
}
VALID_INTERVALS = frozenset({"none", *INTERVALS})
HIGH_FREQUENCY_INTERVALS = frozenset({"5m", "15m", "30m"})


@dataclass(frozen=True)
class RecurrenceEnds:
    type: str = "never"
    until_local_date: str | None = None
    count: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "untilLocalDate": self.until_local_date, "count": self.count}


@dataclass(frozen=True)
class RecurrenceDefinition:
    enabled: bool = False
    interval: str = "none"
    ends: RecurrenceEnds = field(default_factory=RecurrenceEnds)

    @classmethod
    def from_dict(cls, raw: Any) -> "RecurrenceDefinition":
        """Tolerant parse of a stored/submitted recurrence mapping; result is canonical."""
        if isinstance(raw, RecurrenceDefinition):
            return raw.canonical()
        if not isinstance(raw, dict):
            return cls()
        ends_raw = raw.get("ends") if isinstance(raw.get("ends"), dict) else {}
        end_type = _member(ends_raw.get("type"), VALID_END_TYPES, "never")
        count = _positive_int(ends_raw.get("count"))
        until = ends_raw.get("untilLocalDate")
        interval = _member(raw.get("interval"), VALID_INTERVALS, "none")
        return cls(
            enabled=bool(raw.get("enabled")),
            interval=interval,
            ends=RecurrenceEnds(
                type=end_type,
                until_local_date=str(until) if until else None,
                count=count,
            ),
        ).canonical()

    def canonical(self) -> "RecurrenceDefinition":
        if not isinstance(self.interval, str) or self.interval not in INTERVALS:
            return RecurrenceDefinition(enabled=False, interval="none", ends=self.ends)
        return self

    @property
    def is_recurring(self) -> bool:
        return self.enabled and isinstance(self.interval, str) and self.interval in INTERVALS

    @property
    def interval_spec(self) -> IntervalSpec | None:
        return INTERVALS.get(self.interval) if isinstance(self.interval, str) else None

    def to_dict(self) -> dict[str, Any]:
        return {"enabled": self.enabled, "interval": self.interval, "ends": self.ends.to_dict()}


@dataclass(frozen=True)
class Occurrence:
    occurrence_epoch_ms: int
    occurrence_key: str


def _positive_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number if number >= 1 else None


def _member(value: Any, allowed: frozenset[str], default: str) -> str:
    return value if isinstance(value, str) and value in allowed else default


# --- calendar helpers ---

def last_day_of_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def add_months(d: date, n: int) -> date:
    month = d.month - 1 + n
    year = d.year + month // 12
    month = month % 12 + 1
    last = last_day_of_month(year, month)
    day = min(d.day, last)
    return date(year, month, day)


def get_zone(name: str | None) -> ZoneInfo:
    """Resolve an IANA name, falling back to the default timezone."""
    try:
        return ZoneInfo(name or DEFAULT_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo(DEFAULT_TIMEZONE)


def to_epoch_ms(dt: datetime) -> int:
    return (dt - _EPOCH) // timedelta(milliseconds=1)


def from_epoch_ms(epoch_ms: int, tz: ZoneInfo) -> datetime:
    return (_EPOCH + timedelta(milliseconds=epoch_ms)).astimezone(tz)


def local_to_epoch_ms(tz: ZoneInfo, day: date, hour: int, minute: int,
                      second: int = 0, microsecond: int = 0) -> int:
    """
    Convert a local wall-clock time to epoch ms.

    Nonexistent times (DST gap) land after the gap; ambiguous times resolve
    to the first instant (fold=0).
    """
    local = datetime(day.year, day.month, day.day, hour, minute, second, microsecond, tzinfo=tz)
    return to_epoch_ms(local)


def parse_local_date(value: Any) -> date | None:
    if not value:
        return None
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        return None


def parse_local_time(value: Any) -> tuple[int, int] | None:
    if not value:
        return None
    parts = str(value).strip().split(":")
    if len(parts) < 2:
        return None
    try:
        hour, minute = int(parts[0]), int(parts[1])
    except ValueError:
        return None
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        return None
    return hour, minute


def occurrence_key(event_key: str, occurrence_epoch_ms: int) -> str:
    return f"{event_key}__{occurrence_epoch_ms}"


# --- expansion ---

def _record_value(record: Any, attr: str, doc_name: str) -> Any:
    if isinstance(record, dict):
        return record.get(doc_name, record.get(attr))
    return getattr(record, attr, None)


def _epoch_or_none(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and math.isfinite(value):
        return int(value)
    return None


def _until_epoch_ms(recurrence: RecurrenceDefinition, tz: ZoneInfo) -> int | None:
    if recurrence.ends.type != "onDate":
        return None
    until = parse_local_date(recurrence.ends.until_local_date)
    if until is None:
        return None
    return local_to_epoch_ms(tz, until, 23, 59, 59, 999000)


def _max_count(recurrence: RecurrenceDefinition) -> int | None:
    if recurrence.ends.type != "after":
        return None
    return max(1, recurrence.ends.count or 1)


def _expand_sub_day(
    base_ms: int, spec: IntervalSpec, event_key: str,
    range_start_ms: int, range_end_ms: int,
    until_ms: int | None, max_count: int | None, max_occurrences: int,
) -> list[Occurrence]:
    step = spec.step_ms
    # first index at or after range start, computed directly
    start_index = max(0, -((base_ms - range_start_ms) // step))
    max_index = (range_end_ms - base_ms) // step
    if until_ms is not None:
        max_index = min(max_index, (until_ms - base_ms) // step)
    if max_count is not None:
        max_index = min(max_index, max_count - 1)

    out: list[Occurrence] = []
    index = start_index
    while index <= max_index and len(out) < max_occurrences:
        epoch_ms = base_ms + index * step
        if range_start_ms <= epoch_ms <= range_end_ms:
            out.append(Occurrence(epoch_ms, occurrence_key(event_key, epoch_ms)))
        index += 1
    return out


def _expand_calendar(
    anchor_date: date, anchor_time: tuple[int, int], tz: ZoneInfo,
    spec: IntervalSpec, event_key: str,
    range_start_ms: int, range_end_ms: int,
    until_ms: int | None, max_count: int | None, max_occurrences: int,
) -> list[Occurrence]:
    hour, minute = anchor_time
    try:
        range_start_date = from_epoch_ms(range_start_ms, tz).date()
    except (OverflowError, ValueError):
        return []

    # skip straight to the neighbourhood of the range start
    if spec.step_days:
        diff_days = (range_start_date - anchor_date).days
        index = diff_days // spec.step_days if diff_days > 0 else 0
    else:
        diff_months = ((range_start_date.year - anchor_date.year) * 12
                       + (range_start_date.month - anchor_date.month))
        index = diff_months // spec.step_months if diff_months > 0 else 0
    # a local date may map to an instant before the range start; step back one to be safe
    index = max(0, index - 1)

    out: list[Occurrence] = []
    while len(out) < max_occurrences:
        if max_count is not None and index >= max_count:
            break
        try:
            if spec.step_days:
                day = anchor_date + timedelta(days=index * spec.step_days)
            else:
                day = add_months(anchor_date, index * spec.step_months)
            epoch_ms = local_to_epoch_ms(tz, day, hour, minute)
        except (OverflowError, ValueError):
            break
        if epoch_ms < range_start_ms:
            index += 1
            continue
        if epoch_ms > range_end_ms:
            break
        if until_ms is not None and epoch_ms > until_ms:
            break
        out.append(Occurrence(epoch_ms, occurrence_key(event_key, epoch_ms)))
        index += 1
    return out


def expand_occurrences(
    record: Any,
    range_start_ms: int,
    range_end_ms: int,
    max_occurrences: int = DEFAULT_MAX_OCCURRENCES,
) -> list[Occurrence]:
    """
    Concrete firing instants of a reminder record inside [range_start_ms, range_end_ms].

    `record` is a ReminderRecord or its stored document shape. Returns an
    empty list (never raises) when the record has no anchor, its anchor
    cannot be parsed, or the instants fall outside what datetime can hold.
    """
    if record is None or range_end_ms < range_start_ms or max_occurrences <= 0:
        return []

    event_key = _record_value(record, "event_key", "eventKey") or ""
    base_ms = _epoch_or_none(_record_value(record, "event_epoch_ms", "eventEpochMs"))
    metadata = _record_value(record, "metadata", "metadata")
    if not isinstance(metadata, dict):
        metadata = {}
    recurrence = RecurrenceDefinition.from_dict(metadata.get("recurrence"))

    if not recurrence.is_recurring:
        if base_ms is None or base_ms < range_start_ms or base_ms > range_end_ms:
            return []
        return [Occurrence(base_ms, event_key)]

    if base_ms is None:
        return []

    spec = recurrence.interval_spec
    tz = get_zone(_record_value(record, "timezone", "timezone"))
    until_ms = _until_epoch_ms(recurrence, tz)
    max_count = _max_count(recurrence)

    if spec.is_sub_day:
        return _expand_sub_day(base_ms, spec, event_key, range_start_ms, range_end_ms,
                               until_ms, max_count, max_occurrences)

    try:
        anchor_local = from_epoch_ms(base_ms, tz)
    except (OverflowError, ValueError):
        return []
    raw_date = metadata.get("localDate")
    raw_time = metadata.get("localTime")
    anchor_date = parse_local_date(raw_date) if raw_date else anchor_local.date()
    anchor_time = parse_local_time(raw_time) if raw_time else (anchor_local.hour, anchor_local.minute)
    if anchor_date is None or anchor_time is None:
        return []

    return _expand_calendar(anchor_date, anchor_time, tz, spec, event_key,
                            range_start_ms, range_end_ms, until_ms, max_count, max_occurrences)
