"""Tests for scheduling time utilities."""

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from sessionbridge.core.clock import FixedRandomSource, FrozenClock, SeededRandomSource
from sessionbridge.core.exceptions import ValidationError
from sessionbridge.services.scheduling.time_utils import (
    calculate_next_execution_time,
    format_time,
    get_zone,
    is_time_in_range,
    normalize_time_string,
    parse_time,
    should_execute_now,
    time_until_next_execution,
    to_local,
    to_utc,
)

MOSCOW = ZoneInfo("Europe/Moscow")


def _utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class TestParsing:
    """Tests for time parsing and validation."""

    @pytest.mark.parametrize("value,expected", [("14:30", (14, 30)), ("9:05", (9, 5))])
    def test_parse_time(self, value, expected):
        assert parse_time(value) == expected

    @pytest.mark.parametrize(
        "value", ["25:00", "12:60", "abc", "1230", "", "12:3", "14:30\n", " 14:30"]
    )
    def test_parse_time_invalid(self, value):
        with pytest.raises(ValidationError):
            parse_time(value)

    def test_unknown_timezone(self):
        with pytest.raises(ValidationError) as exc_info:
            get_zone("Mars/Olympus_Mons")
        assert exc_info.value.field == "timezone"

    def test_format_time(self):
        assert format_time(time(9, 5, 7)) == "09:05:07"
        assert format_time(time(9, 5, 7), with_seconds=False) == "09:05"


class TestNormalizeTimeString:
    """Tests for loose time coercion."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            (0.75, "18:00"),
            (0.5, "12:00"),
            (0, "00:00"),
            (18.5, "18:30"),
            ("9", "09:00"),
            ("9:5", "09:05"),
            ("18:30:45", "18:30"),
            ("25:70", "23:59"),
            (" 07:15 ", "07:15"),
        ],
    )
    def test_normalizes(self, value, expected):
        assert normalize_time_string(value) == expected

    @pytest.mark.parametrize("value", [None, True, "noon", "12-30", ""])
    def test_uninterpretable(self, value):
        assert normalize_time_string(value) is None


class TestCalculateNextExecutionTime:
    """Tests for calculate_next_execution_time (clock at 15:00 Moscow)."""

    def test_target_passed_moves_to_tomorrow(self, clock, rng):
        next_run = calculate_next_execution_time(
            "14:30", 1, 20, "Europe/Moscow", clock=clock, rng=rng
        )
        assert next_run == _utc(2024, 1, 16, 11, 35)

    def test_target_later_today(self, clock, rng):
        next_run = calculate_next_execution_time(
            "16:00", 1, 20, "Europe/Moscow", clock=clock, rng=rng
        )
        assert next_run == _utc(2024, 1, 15, 13, 5)

    def test_target_equal_to_now_moves_to_tomorrow(self, clock, rng):
        next_run = calculate_next_execution_time(
            "15:00", 1, 20, "Europe/Moscow", clock=clock, rng=rng
        )
        assert next_run.date() == date(2024, 1, 16)

    def test_result_is_within_jitter_window(self, clock):
        rng = SeededRandomSource(42)
        for _ in range(200):
            next_run = calculate_next_execution_time(
                "14:30", 1, 20, "Europe/Moscow", clock=clock, rng=rng
            )
            assert _utc(2024, 1, 16, 11, 31) <= next_run <= _utc(2024, 1, 16, 11, 50)
            assert next_run.tzinfo is not None

    def test_zero_jitter(self, clock):
        next_run = calculate_next_execution_time(
            "16:00", 0, 0, "Europe/Moscow", clock=clock, rng=SeededRandomSource(1)
        )
        assert next_run == _utc(2024, 1, 15, 13, 0)

    def test_jitter_min_greater_than_max(self, clock, rng):
        with pytest.raises(ValidationError):
            calculate_next_execution_time("14:30", 10, 5, clock=clock, rng=rng)

    def test_invalid_time(self, clock, rng):
        with pytest.raises(ValidationError):
            calculate_next_execution_time("24:00", clock=clock, rng=rng)

    def test_time_until_next_execution(self, clock, rng):
        assert time_until_next_execution(
            "16:00", 1, 20, "Europe/Moscow", clock=clock, rng=rng
        ) == timedelta(minutes=65)


class TestShouldExecuteNow:
    """Tests for should_execute_now."""

    def test_due_after_randomized_target(self, clock, rng):
        decision = should_execute_now("14:30", None, 1, 20, "Europe/Moscow", clock=clock, rng=rng)

        assert decision.fire is True
        assert decision.jitter_used == 5
        assert decision.randomized_target == datetime(2024, 1, 15, 14, 35, tzinfo=MOSCOW)
        assert decision.already_fired_today is False

    def test_not_yet_due(self, clock, rng):
        decision = should_execute_now("15:30", None, 1, 20, "Europe/Moscow", clock=clock, rng=rng)
        assert decision.fire is False

    def test_already_executed_today_by_date(self, clock, rng):
        decision = should_execute_now(
            "14:30", date(2024, 1, 15), 1, 20, "Europe/Moscow", clock=clock, rng=rng
        )
        assert decision.fire is False
        assert decision.already_fired_today is True

    def test_naive_last_execution_is_utc(self, clock, rng):
        # 21:30 UTC on the 14th is already the 15th in Moscow
        decision = should_execute_now(
            "14:30", datetime(2024, 1, 14, 21, 30), 1, 20, "Europe/Moscow",
            clock=clock, rng=rng,
        )
        assert decision.already_fired_today is True

    def test_executed_yesterday(self, clock, rng):
        decision = should_execute_now(
            "14:30", _utc(2024, 1, 14, 11, 40), 1, 20, "Europe/Moscow", clock=clock, rng=rng
        )
        assert decision.fire is True

    def test_to_dict(self, clock, rng):
        data = should_execute_now("14:30", clock=clock, rng=rng).to_dict()
        assert data["shouldExecute"] is True
        assert data["offsetMinutes"] == 5
        assert data["baseTime"] == "14:30"

    def test_fires_once_per_day_under_minute_polling(self):
        clock = FrozenClock(_utc(2024, 1, 15, 11, 0))
        rng = SeededRandomSource(7)
        last_execution = None
        fired_at = []

        for _ in range(26 * 60):
            decision = should_execute_now(
                "14:30", last_execution, 1, 20, "Europe/Moscow", clock=clock, rng=rng
            )
            if decision.fire:
                last_execution = clock.now()
                fired_at.append(clock.now())
            clock.advance(minutes=1)

        # One run on the 15th and one on the 16th
        assert len(fired_at) == 2
        first = fired_at[0].astimezone(MOSCOW)
        assert time(14, 31) <= first.time() <= time(14, 50)
        assert fired_at[1].astimezone(MOSCOW).date() == date(2024, 1, 16)


class TestTimezoneConversion:
    """Tests for to_utc / to_local."""

    def test_moscow_round_trip(self, clock):
        assert to_utc("14:30", "Europe/Moscow", clock=clock) == "11:30"
        assert to_local("11:30", "Europe/Moscow", clock=clock) == "14:30"

    def test_across_midnight(self, clock):
        assert to_utc("01:00", "Europe/Moscow", clock=clock) == "22:00"
        assert to_local("22:30", "Asia/Tokyo", clock=clock) == "07:30"

    def test_daylight_saving(self):
        winter = FrozenClock(_utc(2024, 1, 15, 12, 0))
        summer = FrozenClock(_utc(2024, 7, 15, 12, 0))

        assert to_utc("10:00", "Europe/Berlin", clock=winter) == "09:00"
        assert to_utc("10:00", "Europe/Berlin", clock=summer) == "08:00"

    @pytest.mark.parametrize("tz", ["Europe/Moscow", "America/New_York", "Asia/Kolkata", "UTC"])
    def test_round_trip(self, clock, tz):
        assert to_local(to_utc("09:45", tz, clock=clock), tz, clock=clock) == "09:45"

    def test_invalid_timezone(self, clock):
        with pytest.raises(ValidationError):
            to_utc("10:00", "Nowhere/City", clock=clock)


class TestIsTimeInRange:
    """Tests for is_time_in_range (clock at 12:00 UTC)."""

    def test_inside(self, clock):
        assert is_time_in_range("11:00", "13:00", clock=clock) is True

    def test_bounds_are_inclusive(self, clock):
        assert is_time_in_range("12:00", "12:00", clock=clock) is True
        assert is_time_in_range("10:00", "12:00", clock=clock) is True

    def test_outside(self, clock):
        assert is_time_in_range("13:00", "14:00", clock=clock) is False

    def test_wraps_past_midnight(self, clock):
        assert is_time_in_range("23:00", "01:00", clock=clock) is False
        clock.set(_utc(2024, 1, 15, 23, 30))
        assert is_time_in_range("23:00", "01:00", clock=clock) is True
        clock.set(_utc(2024, 1, 16, 0, 30))
        assert is_time_in_range("23:00", "01:00", clock=clock) is True

    def test_with_timezone(self, clock):
        assert is_time_in_range("14:00", "16:00", clock=clock, tz="Europe/Moscow") is True
        assert is_time_in_range("14:00", "16:00", clock=clock) is False

    def test_rng_is_clamped(self):
        assert FixedRandomSource(50).randint(1, 20) == 20
