"""Randomized daily scheduling."""

from .recurring import RecurringTask, RecurringTaskRunner
from .time_utils import (
    ExecutionDecision,
    calculate_next_execution_time,
    format_time,
    is_time_in_range,
    normalize_time_string,
    parse_time,
    should_execute_now,
    time_until_next_execution,
    to_local,
    to_utc,
)

__all__ = [
    "ExecutionDecision",
    "RecurringTask",
    "RecurringTaskRunner",
    "calculate_next_execution_time",
    "format_time",
    "is_time_in_range",
    "normalize_time_string",
    "parse_time",
    "should_execute_now",
    "time_until_next_execution",
    "to_local",
    "to_utc",
]
