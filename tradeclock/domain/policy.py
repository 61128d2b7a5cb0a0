"""
Reminder cost-control policy.

Advisory only: nothing here blocks a save or suppresses a trigger. Callers
get warning strings for the reminder dialog and a quiet-hours predicate for
the dispatcher.
"""
import math
from typing import Any, Iterable

from tradeclock.domain.recurrence import (
    HIGH_FREQUENCY_INTERVALS,
    RecurrenceDefinition,
    from_epoch_ms,
    get_zone,
)
from tradeclock.domain.reminders import MAX_REMINDERS_PER_EVENT, Reminder, normalize_channels


DAILY_REMINDER_CAP = 50
QUIET_HOURS = {"start": 21, "end": 6}
THROTTLE_WINDOW_MS = 2 * 60 * 1000


def occurrences_per_day(recurrence: Any) -> float:
    """Approximate occurrence density; non-recurring definitions count as one per day."""
    definition = RecurrenceDefinition.from_dict(recurrence)
    if not definition.is_recurring:
        return 1
    return definition.interval_spec.occurrences_per_day


def _channel_count(reminder: Any) -> int:
    if isinstance(reminder, Reminder):
        return reminder.channels.active_count
    if isinstance(reminder, dict):
        return normalize_channels(reminder.get("channels")).active_count
    return 0


def _reminder_list(reminders: Any) -> list[Any]:
    return list(reminders) if isinstance(reminders, (list, tuple)) else []


def estimate_daily_triggers(reminders: Iterable[Any], recurrence: Any) -> float:
    per_occurrence = sum(_channel_count(r) for r in _reminder_list(reminders))
    return occurrences_per_day(recurrence) * per_occurrence


def policy_warnings(reminders: Iterable[Any], recurrence: Any,
                    daily_cap: int = DAILY_REMINDER_CAP) -> list[str]:
    """Human-readable, non-blocking warnings for a candidate reminder configuration."""
    reminders = _reminder_list(reminders)
    warnings: list[str] = []

    estimated = estimate_daily_triggers(reminders, recurrence)
    if estimated > daily_cap:
        warnings.append(
            f"This schedule could generate about {math.ceil(estimated)} reminders per day, "
            f"which exceeds the daily cap ({daily_cap})."
        )

    interval = recurrence.get("interval") if isinstance(recurrence, dict) else getattr(recurrence, "interval", None)
    if isinstance(interval, str) and interval in HIGH_FREQUENCY_INTERVALS:
        warnings.append(
            "High-frequency repeats can be throttled to protect performance. "
            "Consider fewer reminders or a longer interval."
        )

    if len(reminders) > MAX_REMINDERS_PER_EVENT:
        warnings.append(
            f"Only {MAX_REMINDERS_PER_EVENT} reminders are allowed per event. "
            "Extra reminders will be ignored."
        )

    return warnings


def is_within_quiet_hours(epoch_ms: Any, timezone: str | None = None,
                          quiet_hours: dict[str, int] | None = None) -> bool:
    """
    True when the local hour at epoch_ms falls in [start, end).

    A window with start > end wraps midnight (21 -> 6). start == end is an
    empty window.
    """
    if not isinstance(epoch_ms, (int, float)) or isinstance(epoch_ms, bool) or not math.isfinite(epoch_ms):
        return False
    window = quiet_hours or QUIET_HOURS
    start, end = window["start"] % 24, window["end"] % 24
    if start == end:
        return False
    try:
        hour = from_epoch_ms(int(epoch_ms), get_zone(timezone)).hour
    except (OverflowError, ValueError):
        return False
    if start < end:
        return start <= hour < end
    return hour >= start or hour < end


def day_key_for_timezone(epoch_ms: int, timezone: str | None = None) -> str:
    """
    Local calendar day (YYYY-MM-DD) of an instant; used to bucket daily caps.
    Empty string when the instant is outside what datetime can hold.
    """
    try:
        return from_epoch_ms(int(epoch_ms), get_zone(timezone)).strftime("%Y-%m-%d")
    except (OverflowError, ValueError):
        return ""


def _format_hour(hour: int) -> str:
    normalized = hour % 24
    suffix = "PM" if normalized >= 12 else "AM"
    return f"{normalized % 12 or 12} {suffix}"


def quiet_hours_label(quiet_hours: dict[str, int] | None = None) -> str:
    window = quiet_hours or QUIET_HOURS
    return f"{_format_hour(window['start'])} - {_format_hour(window['end'])}"


def is_throttled(last_sent_ms: int | None, now_ms: int, window_ms: int = THROTTLE_WINDOW_MS) -> bool:
    """True when another trigger for the same key fired less than window_ms ago."""
    return last_sent_ms is not None and 0 <= now_ms - last_sent_ms < window_ms

