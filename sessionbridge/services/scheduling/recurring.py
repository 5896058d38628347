"""Recurring daily operations for authenticated sessions.

Each user can register a few named daily tasks ("evening transfer", "morning
balance check"). A periodic tick evaluates every task of every authenticated
session and asks the driver to run the operation when it is due.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional

from loguru import logger

from ...core.clock import Clock, RandomSource, system_clock, system_random
from ...core.exceptions import DriverError, ValidationError
from ...utils.masking import mask_session_id
from ..session.models import Session
from ..session.registry import SessionRegistry
from .time_utils import (
    DEFAULT_JITTER_MAX,
    DEFAULT_JITTER_MIN,
    DEFAULT_TIMEZONE,
    calculate_next_execution_time,
    get_zone,
    parse_time,
    should_execute_now,
    validate_jitter,
)


@dataclass
class RecurringTask:
    """
    A daily operation fired once per calendar day after a jittered target time.

    Attributes:
        name: Unique per user, e.g. "evening"
        operation: Driver operation name passed to ``execute``
        target_local_time: HH:MM in ``timezone``
        timezone: IANA zone name
        jitter_min: Minimum random delay in minutes
        jitter_max: Maximum random delay in minutes
        last_executed_date: Calendar date (in ``timezone``) of the last run
    """

    name: str
    operation: str
    target_local_time: str
    timezone: str = DEFAULT_TIMEZONE
    jitter_min: int = DEFAULT_JITTER_MIN
    jitter_max: int = DEFAULT_JITTER_MAX
    last_executed_date: Optional[date] = None
    last_result: Optional[Dict[str, Any]] = field(default=None, compare=False)

    def __post_init__(self) -> None:
        if not self.name:
            raise ValidationError("task name is required", field="name")
        if not self.operation:
            raise ValidationError("task operation is required", field="operation")
        parse_time(self.target_local_time)
        get_zone(self.timezone)
        validate_jitter(self.jitter_min, self.jitter_max)

    def record_execution(self, on: date) -> None:
        """Advance ``last_executed_date``; never moves backwards."""
        if self.last_executed_date is None or on > self.last_executed_date:
            self.last_executed_date = on

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "operation": self.operation,
            "targetLocalTime": self.target_local_time,
            "timezone": self.timezone,
            "jitterMin": self.jitter_min,
            "jitterMax": self.jitter_max,
            "lastExecutedDate": (
                self.last_executed_date.isoformat() if self.last_executed_date else None
            ),
            "lastResult": self.last_result,
        }


class RecurringTaskRunner:
    """Evaluates recurring tasks on each scheduler tick."""

    def __init__(
        self,
        registry: SessionRegistry,
        clock: Clock = system_clock,
        rng: RandomSource = system_random,
    ):
        self._registry = registry
        self._clock = clock
        self._rng = rng
        self._tasks: Dict[str, Dict[str, RecurringTask]] = {}

    # ------------------------------------------------------------------
    # Task registration
    # ------------------------------------------------------------------

    def set_tasks(self, username: str, tasks: Iterable[RecurringTask]) -> List[RecurringTask]:
        """
        Replace the tasks of a user.

        A task keeping its name and target time keeps its last execution date,
        so re-sending an unchanged schedule cannot make it fire twice a day.
        """
        previous = self._tasks.get(username, {})
        updated: Dict[str, RecurringTask] = {}
        for task in tasks:
            if task.name in updated:
                raise ValidationError(f"Duplicate task name: {task.name}", field="name")
            old = previous.get(task.name)
            if (
                old is not None
                and old.target_local_time == task.target_local_time
                and old.timezone == task.timezone
                and old.last_executed_date is not None
            ):
                task.record_execution(old.last_executed_date)
            updated[task.name] = task

        self._tasks[username] = updated
        logger.info(f"[SCHEDULER] {len(updated)} task(s) registered for user {username}")
        return list(updated.values())

    def add_task(self, username: str, task: RecurringTask) -> None:
        self._tasks.setdefault(username, {})[task.name] = task

    def remove_task(self, username: str, name: str) -> bool:
        return self._tasks.get(username, {}).pop(name, None) is not None

    def get_tasks(self, username: str) -> List[RecurringTask]:
        return list(self._tasks.get(username, {}).values())

    def clear(self, username: str) -> None:
        self._tasks.pop(username, None)

    def next_runs(self, username: str) -> List[Dict[str, Any]]:
        """Preview of the next execution instant of each task (jitter rolled now)."""
        previews = []
        for task in self.get_tasks(username):
            next_run = calculate_next_execution_time(
                task.target_local_time,
                task.jitter_min,
                task.jitter_max,
                task.timezone,
                clock=self._clock,
                rng=self._rng,
            )
            previews.append({**task.to_dict(), "nextRun": next_run.isoformat()})
        return previews

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    async def tick(self) -> int:
        """
        Evaluate all tasks of all authenticated sessions.

        Sessions are processed concurrently so a slow driver does not delay
        the others.

        Returns:
            Number of operations fired
        """
        sessions = [
            s for s in self._registry.list_sessions()
            if s.is_authenticated and self._tasks.get(s.username)
        ]
        if not sessions:
            return 0

        results = await asyncio.gather(
            *(self._tick_session(s) for s in sessions), return_exceptions=True
        )

        fired = 0
        for session, result in zip(sessions, results):
            if isinstance(result, BaseException):
                logger.error(
                    f"[SCHEDULER] Tick failed for session "
                    f"{mask_session_id(session.session_id)}: {result}"
                )
            else:
                fired += result
        return fired

    async def _tick_session(self, session: Session) -> int:
        fired = 0
        for task in self.get_tasks(session.username):
            if session.is_closed:
                break
            try:
                if await self._evaluate(session, task):
                    fired += 1
            except Exception as e:
                logger.error(
                    f"[SCHEDULER] Task '{task.name}' failed for user {session.username}: {e}"
                )
        return fired

    async def _evaluate(self, session: Session, task: RecurringTask) -> bool:
        decision = should_execute_now(
            task.target_local_time,
            task.last_executed_date,
            task.jitter_min,
            task.jitter_max,
            task.timezone,
            clock=self._clock,
            rng=self._rng,
        )
        if not decision.fire:
            return False

        # Recorded before awaiting the driver so an overlapping tick sees it
        now = self._clock.now()
        task.record_execution(now.astimezone(get_zone(task.timezone)).date())

        logger.info(
            f"[SCHEDULER] Executing '{task.operation}' for user {session.username} "
            f"(base {decision.base_time}, +{decision.jitter_used} min)"
        )

        try:
            result = await session.driver.execute(task.operation)
        except DriverError as e:
            task.last_result = self._result_dict(now, False, e.message)
            if e.fatal:
                logger.error(
                    f"[SCHEDULER] Fatal driver error for user {session.username}, closing session"
                )
                await self._registry.close_session(session.session_id)
            raise

        task.last_result = self._result_dict(now, result.success, result.error, result.data)
        self._registry.update_metadata(session.session_id, **{task.name: task.last_result})

        if result.success:
            logger.info(f"[SCHEDULER] '{task.operation}' completed for user {session.username}")
        else:
            logger.warning(
                f"[SCHEDULER] '{task.operation}' failed for user {session.username}: "
                f"{result.error}"
            )
        return True

    @staticmethod
    def _result_dict(
        executed_at: datetime,
        success: bool,
        error: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        return {
            "executedAt": executed_at.isoformat(),
            "success": success,
            "error": error,
            "data": data or {},
        }
