"""Tests for reminder cost-control policy"""
from datetime import datetime, timezone

import pytest

from tradeclock.domain.policy import (
    day_key_for_timezone,
    estimate_daily_triggers,
    is_throttled,
    is_within_quiet_hours,
    occurrences_per_day,
    policy_warnings,
    quiet_hours_label,
)
from tradeclock.domain.recurrence import to_epoch_ms


ALL_CHANNELS = {"inApp": True, "browser": True, "push": True}


def _utc_ms(*args) -> int:
    return to_epoch_ms(datetime(*args, tzinfo=timezone.utc))


def _recurrence(interval: str) -> dict:
    return {"enabled": True, "interval": interval, "ends": {"type": "never"}}


class TestEstimates:
    def test_occurrences_per_day(self):
        assert occurrences_per_day(None) == 1
        assert occurrences_per_day(_recurrence("15m")) == 96
        assert occurrences_per_day(_recurrence("1W")) == pytest.approx(1 / 7)
        assert occurrences_per_day({"enabled": False, "interval": "1h"}) == 1

    def test_estimate_counts_enabled_channels(self):
        reminders = [
            {"minutesBefore": 5, "channels": ALL_CHANNELS},
            {"minutesBefore": 15, "channels": {"push": True}},
        ]
        assert estimate_daily_triggers(reminders, None) == 4
        assert estimate_daily_triggers(reminders, _recurrence("1h")) == 96


class TestPolicyWarnings:
    def test_cap_warning_rounds_up(self):
        warnings = policy_warnings([{"minutesBefore": 5, "channels": ALL_CHANNELS}], _recurrence("1h"))
        assert warnings == [
            "This schedule could generate about 72 reminders per day, which exceeds the daily cap (50)."
        ]

    def test_high_frequency_warning(self):
        warnings = policy_warnings([{"minutesBefore": 0, "channels": {"inApp": True}}], _recurrence("15m"))
        assert len(warnings) == 2
        assert "96 reminders per day" in warnings[0]
        assert warnings[1].startswith("High-frequency repeats can be throttled")

    def test_too_many_reminders(self):
        reminders = [{"minutesBefore": m, "channels": {"inApp": True}} for m in (0, 5, 10, 15)]
        warnings = policy_warnings(reminders, None)
        assert warnings == ["Only 3 reminders are allowed per event. Extra reminders will be ignored."]

    def test_reasonable_schedule_has_no_warnings(self):
        reminders = [{"minutesBefore": m, "channels": {"push": True}} for m in (0, 5, 10)]
        assert policy_warnings(reminders, _recurrence("1D")) == []

    def test_custom_cap(self):
        reminders = [{"minutesBefore": 5, "channels": {"push": True}}]
        assert policy_warnings(reminders, _recurrence("4h"), daily_cap=5) == [
            "This schedule could generate about 6 reminders per day, which exceeds the daily cap (5)."
        ]

    def test_malformed_reminders_are_empty(self):
        assert policy_warnings(5, None) == []
        assert policy_warnings("15m", _recurrence("1D")) == []
        assert policy_warnings({"minutesBefore": 5}, None) == []
        assert estimate_daily_triggers(5, _recurrence("1h")) == 0

    def test_unhashable_interval(self):
        reminders = [{"minutesBefore": 0, "channels": {"inApp": True}}]
        assert policy_warnings(reminders, {"enabled": True, "interval": {}}) == []
        assert policy_warnings(reminders, {"enabled": True, "interval": ["15m"]}) == []


class TestQuietHours:
    @pytest.mark.parametrize("hour,expected", [
        (21, True), (23, True), (0, True), (5, True), (6, False), (12, False), (20, False),
    ])
    def test_default_window_wraps_midnight(self, hour, expected):
        assert is_within_quiet_hours(_utc_ms(2026, 3, 2, hour, 0), "UTC") is expected

    def test_uses_local_hour(self):
        # 02:00 UTC is 21:00 the previous evening in New York (EST)
        assert is_within_quiet_hours(_utc_ms(2026, 1, 15, 2, 0), "America/New_York")
        assert not is_within_quiet_hours(_utc_ms(2026, 1, 15, 17, 0), "America/New_York")

    def test_non_wrapping_window(self):
        window = {"start": 9, "end": 17}
        assert is_within_quiet_hours(_utc_ms(2026, 3, 2, 9, 0), "UTC", window)
        assert not is_within_quiet_hours(_utc_ms(2026, 3, 2, 17, 0), "UTC", window)

    def test_empty_window(self):
        assert not is_within_quiet_hours(_utc_ms(2026, 3, 2, 9, 0), "UTC", {"start": 9, "end": 9})

    def test_invalid_instant(self):
        assert not is_within_quiet_hours(None)
        assert not is_within_quiet_hours(float("nan"))
        assert not is_within_quiet_hours("22:00")

    def test_instant_beyond_datetime_limits(self):
        assert is_within_quiet_hours(1e17, "UTC") is False
        assert is_within_quiet_hours(-(10 ** 17), "America/New_York") is False

    def test_label(self):
        assert quiet_hours_label() == "9 PM - 6 AM"
        assert quiet_hours_label({"start": 0, "end": 12}) == "12 AM - 12 PM"


class TestDayKeyAndThrottle:
    def test_day_key_is_local(self):
        instant = _utc_ms(2026, 3, 2, 3, 0)
        assert day_key_for_timezone(instant, "UTC") == "2026-03-02"
        assert day_key_for_timezone(instant, "America/New_York") == "2026-03-01"
        assert day_key_for_timezone(10 ** 17, "UTC") == ""

    def test_throttle_window(self):
        now = _utc_ms(2026, 3, 2, 10, 0)
        assert not is_throttled(None, now)
        assert is_throttled(now - 1000, now)
        assert not is_throttled(now - 120000, now)
        assert not is_throttled(now - 1000, now, window_ms=500)
