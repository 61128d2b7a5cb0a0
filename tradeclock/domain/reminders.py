"""
Reminder normalization.

A reminder is one lead-time + channel configuration attached to an event or
a recurring series. Raw input comes from free-form form state and may be
half-edited, so malformed entries are dropped instead of failing the batch.
"""
import math
from dataclasses import dataclass, field
from typing import Any, Iterable


MAX_REMINDERS_PER_EVENT = 3
CHANNEL_NAMES = ("inApp", "browser", "push")


@dataclass(frozen=True)
class ReminderChannels:
    in_app: bool = False
    browser: bool = False
    push: bool = False

    @property
    def active_count(self) -> int:
        return int(self.in_app) + int(self.browser) + int(self.push)

    def is_enabled(self, channel: str) -> bool:
        return {"inApp": self.in_app, "browser": self.browser, "push": self.push}.get(channel, False)

    def to_dict(self) -> dict[str, bool]:
        return {"inApp": self.in_app, "browser": self.browser, "push": self.push}


@dataclass(frozen=True)
class Reminder:
    minutes_before: int | float
    channels: ReminderChannels = field(default_factory=ReminderChannels)

    def to_dict(self) -> dict[str, Any]:
        return {"minutesBefore": self.minutes_before, "channels": self.channels.to_dict()}


def _get(raw: Any, *names: str) -> Any:
    for name in names:
        if isinstance(raw, dict):
            if name in raw:
                return raw[name]
        elif hasattr(raw, name):
            return getattr(raw, name)
    return None


def normalize_channels(raw: Any) -> ReminderChannels:
    """Coerce a channel mapping (or ReminderChannels) into ReminderChannels; missing flags are False."""
    if isinstance(raw, ReminderChannels):
        return raw
    if not raw:
        return ReminderChannels()
    return ReminderChannels(
        in_app=bool(_get(raw, "inApp", "in_app")),
        browser=bool(_get(raw, "browser")),
        push=bool(_get(raw, "push")),
    )


def _coerce_minutes(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        minutes = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(minutes) or minutes < 0:
        return None
    return minutes


def normalize_reminders(raw_reminders: Any) -> list[Reminder]:
    """
    Validate and canonicalize raw reminder input.

    Drops entries whose lead time is not a finite number >= 0, sorts by
    minutes_before ascending and keeps at most MAX_REMINDERS_PER_EVENT.
    """
    if not isinstance(raw_reminders, (list, tuple)):
        return []

    out: list[Reminder] = []
    for raw in raw_reminders:
        if raw is None:
            continue
        minutes = _coerce_minutes(_get(raw, "minutesBefore", "minutes_before"))
        if minutes is None:
            continue
        out.append(Reminder(
            minutes_before=int(minutes) if minutes.is_integer() else minutes,
            channels=normalize_channels(_get(raw, "channels")),
        ))

    out.sort(key=lambda r: r.minutes_before)
    return out[:MAX_REMINDERS_PER_EVENT]


def aggregate_channels(reminders: Iterable[Reminder]) -> ReminderChannels:
    """Union of all reminder channels."""
    in_app = browser = push = False
    for reminder in reminders:
        in_app = in_app or reminder.channels.in_app
        browser = browser or reminder.channels.browser
        push = push or reminder.channels.push
    return ReminderChannels(in_app=in_app, browser=browser, push=push)
