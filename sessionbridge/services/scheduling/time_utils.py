"""Time utilities for recurring operations.

Scheduling with random delays and timezone support. Every function takes the
clock and RNG as keyword arguments so callers (and tests) decide what "now"
and "random" mean.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Dict, Optional, Tuple, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ...core.clock import Clock, RandomSource, system_clock, system_random
from ...core.exceptions import ValidationError

DEFAULT_TIMEZONE = "Europe/Moscow"
DEFAULT_JITTER_MIN = 1
DEFAULT_JITTER_MAX = 20

_HHMM_PATTERN = re.compile(r"\d{1,2}:\d{2}")
_LOOSE_TIME_PATTERN = re.compile(r"(\d{1,2})(?::(\d{1,2}))?(?::(\d{1,2}))?")


def get_zone(tz: str) -> ZoneInfo:
    """
    Resolve a timezone name.

    Raises:
        ValidationError: For unknown zones
    """
    try:
        return ZoneInfo(tz)
    except (ZoneInfoNotFoundError, ValueError, TypeError) as e:
        raise ValidationError(f"Unknown timezone: {tz}", field="timezone") from e


def parse_time(time_string: str) -> Tuple[int, int]:
    """
    Parse ``H:MM`` / ``HH:MM`` into hours and minutes.

    Raises:
        ValidationError: On malformed input or out-of-range values
    """
    if not time_string or not _HHMM_PATTERN.fullmatch(str(time_string)):
        raise ValidationError("Invalid time format. Expected HH:MM", field="time")

    hours, minutes = (int(part) for part in time_string.split(":"))
    if hours > 23 or minutes > 59:
        raise ValidationError(f"Invalid time values: {time_string}", field="time")
    return hours, minutes


def format_time(value: Union[datetime, time], with_seconds: bool = True) -> str:
    """Format as ``HH:MM:SS`` (or ``HH:MM``)."""
    return value.strftime("%H:%M:%S" if with_seconds else "%H:%M")


def validate_jitter(jitter_min: int, jitter_max: int) -> None:
    if jitter_min > jitter_max:
        raise ValidationError(
            "jitter_min cannot be greater than jitter_max",
            details={"jitter_min": jitter_min, "jitter_max": jitter_max},
        )


def normalize_time_string(value: Any) -> Optional[str]:
    """
    Coerce loosely formatted time values to ``HH:MM``.

    Accepts spreadsheet day fractions (``0.75`` is 18:00), decimal hours
    (``18.5`` is 18:30) and ``H``, ``H:M`` or ``H:M:S`` strings. Components are
    clamped into range.

    Returns:
        ``HH:MM`` or None if the value cannot be interpreted
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        if 0 <= value < 1:
            total_minutes = round(value * 24 * 60)
            return f"{(total_minutes // 60) % 24:02d}:{total_minutes % 60:02d}"
        if 1 <= value < 24:
            hour = int(value) % 24
            minute = min(round((value - int(value)) * 60), 59)
            return f"{hour:02d}:{minute:02d}"

    text = str(value).strip()
    match = _LOOSE_TIME_PATTERN.fullmatch(text)
    if not match:
        return None

    hour = min(max(int(match.group(1)), 0), 23)
    minute = min(max(int(match.group(2) or 0), 0), 59)
    return f"{hour:02d}:{minute:02d}"


def _today_at(hhmm: str, zone: Union[ZoneInfo, timezone], now: datetime) -> datetime:
    hours, minutes = parse_time(hhmm)
    local_today = now.astimezone(zone).date()
    return datetime.combine(local_today, time(hours, minutes), tzinfo=zone)


def to_utc(time_string: str, tz: str = DEFAULT_TIMEZONE, *, clock: Clock = system_clock) -> str:
    """
    Convert a wall-clock time in ``tz`` to UTC, as of today.

    Args:
        time_string: Time in HH:MM format
        tz: Timezone name (e.g. "Europe/Moscow")

    Returns:
        UTC time in HH:MM format
    """
    local_time = _today_at(time_string, get_zone(tz), clock.now())
    return format_time(local_time.astimezone(timezone.utc), with_seconds=False)


def to_local(time_string: str, tz: str = DEFAULT_TIMEZONE, *, clock: Clock = system_clock) -> str:
    """
    Convert a UTC wall-clock time to ``tz``, as of today.

    Returns:
        Local time in HH:MM format
    """
    zone = get_zone(tz)
    utc_time = _today_at(time_string, timezone.utc, clock.now())
    return format_time(utc_time.astimezone(zone), with_seconds=False)


def calculate_next_execution_time(
    target_time: str,
    jitter_min: int = DEFAULT_JITTER_MIN,
    jitter_max: int = DEFAULT_JITTER_MAX,
    tz: str = DEFAULT_TIMEZONE,
    *,
    clock: Clock = system_clock,
    rng: RandomSource = system_random,
) -> datetime:
    """
    Calculate the next execution instant of a daily target time.

    Today's occurrence is used unless it is at or before now, then tomorrow's.
    A random number of minutes in ``[jitter_min, jitter_max]`` is added.

    Args:
        target_time: Target time in HH:MM format in ``tz``
        jitter_min: Minimum random offset in minutes
        jitter_max: Maximum random offset in minutes
        tz: Timezone name

    Returns:
        Next execution instant (aware, UTC)

    Raises:
        ValidationError: On malformed time, out-of-range values or jitter_min > jitter_max
    """
    validate_jitter(jitter_min, jitter_max)
    zone = get_zone(tz)
    now = clock.now()

    target = _today_at(target_time, zone, now)
    if target <= now:
        target = datetime.combine(target.date() + timedelta(days=1), target.timetz())

    offset = rng.randint(jitter_min, jitter_max)
    return (target + timedelta(minutes=offset)).astimezone(timezone.utc)


@dataclass(frozen=True)
class ExecutionDecision:
    """Result of a single ``should_execute_now`` evaluation."""

    fire: bool
    jitter_used: int
    randomized_target: datetime
    already_fired_today: bool
    base_time: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "shouldExecute": self.fire,
            "offsetMinutes": self.jitter_used,
            "randomizedTarget": self.randomized_target.isoformat(),
            "alreadyExecutedToday": self.already_fired_today,
            "baseTime": self.base_time,
        }


def _local_date(value: Union[datetime, date], zone: ZoneInfo) -> date:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(zone).date()
    return value


def should_execute_now(
    target_time: str,
    last_execution: Optional[Union[datetime, date]] = None,
    jitter_min: int = DEFAULT_JITTER_MIN,
    jitter_max: int = DEFAULT_JITTER_MAX,
    tz: str = DEFAULT_TIMEZONE,
    *,
    clock: Clock = system_clock,
    rng: RandomSource = system_random,
) -> ExecutionDecision:
    """
    Decide whether a daily task is due right now.

    The jitter is rolled afresh on every call, so polling frequency does not
    bias the fire moment towards the start of the window. A task fires at most
    once per calendar day in ``tz``.

    Args:
        target_time: Target time in HH:MM format in ``tz``
        last_execution: Last execution instant (naive values are UTC) or the
            calendar date of the last execution in ``tz``
        jitter_min: Minimum random offset in minutes
        jitter_max: Maximum random offset in minutes
        tz: Timezone name
    """
    validate_jitter(jitter_min, jitter_max)
    zone = get_zone(tz)
    now = clock.now()

    offset = rng.randint(jitter_min, jitter_max)
    randomized_target = _today_at(target_time, zone, now) + timedelta(minutes=offset)

    today = now.astimezone(zone).date()
    already_fired = last_execution is not None and _local_date(last_execution, zone) == today

    return ExecutionDecision(
        fire=not already_fired and now >= randomized_target,
        jitter_used=offset,
        randomized_target=randomized_target,
        already_fired_today=already_fired,
        base_time=target_time,
    )


def time_until_next_execution(
    target_time: str,
    jitter_min: int = DEFAULT_JITTER_MIN,
    jitter_max: int = DEFAULT_JITTER_MAX,
    tz: str = DEFAULT_TIMEZONE,
    *,
    clock: Clock = system_clock,
    rng: RandomSource = system_random,
) -> timedelta:
    """Time left until the next (jittered) execution."""
    next_run = calculate_next_execution_time(
        target_time, jitter_min, jitter_max, tz, clock=clock, rng=rng
    )
    return next_run - clock.now()


def is_time_in_range(
    start: str,
    end: str,
    *,
    clock: Clock = system_clock,
    tz: Optional[str] = None,
) -> bool:
    """
    Check whether now falls within ``[start, end]`` (inclusive, minute precision).

    A range with ``start > end`` wraps past midnight, so 23:00-01:00 matches
    both late evening and early morning. ``tz`` defaults to UTC.
    """
    zone = get_zone(tz) if tz else timezone.utc
    now = clock.now().astimezone(zone)
    current = now.hour * 60 + now.minute

    start_h, start_m = parse_time(start)
    end_h, end_m = parse_time(end)
    start_minutes = start_h * 60 + start_m
    end_minutes = end_h * 60 + end_m

    if start_minutes > end_minutes:
        return current >= start_minutes or current <= end_minutes
    return start_minutes <= current <= end_minutes
