"""Fixed-cadence background timers.

A timer awaits its callback before sleeping again, so two runs of the same
timer never overlap. ``run_once`` called while a run is in progress is
skipped.
"""

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Optional, Union

from loguru import logger

TimerCallback = Callable[[], Union[Awaitable[Any], Any]]


class PeriodicTimer:
    """Runs a callback every ``interval_seconds`` in a background task."""

    def __init__(self, name: str, interval_seconds: float, callback: TimerCallback):
        """
        Initialize timer.

        Args:
            name: Name used in logs
            interval_seconds: Delay between the end of one run and the next
            callback: Sync or async callable
        """
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.name = name
        self.interval_seconds = interval_seconds
        self._callback = callback
        self._task: Optional[asyncio.Task] = None
        self._running = False
        self.runs = 0
        self.skipped = 0

    @property
    def is_started(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def is_running(self) -> bool:
        """True while a callback invocation is in progress."""
        return self._running

    def start(self) -> None:
        """Start the background loop (no-op if already started)."""
        if self.is_started:
            return
        self._task = asyncio.create_task(self._loop(), name=f"timer:{self.name}")
        logger.info(f"Timer '{self.name}' started (interval: {self.interval_seconds}s)")

    async def stop(self) -> None:
        """Cancel the loop and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info(f"Timer '{self.name}' stopped")

    async def run_once(self) -> bool:
        """
        Invoke the callback now.

        Errors are logged, never raised.

        Returns:
            False if skipped because a run was already in progress
        """
        if self._running:
            self.skipped += 1
            logger.warning(f"Timer '{self.name}' still running, skipping this run")
            return False

        self._running = True
        try:
            result = self._callback()
            if inspect.isawaitable(result):
                await result
            self.runs += 1
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Error in timer '{self.name}': {e}")
        finally:
            self._running = False
        return True

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            await self.run_once()
