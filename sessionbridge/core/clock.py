"""Injectable time and random-number sources.

Services take a ``Clock`` and a ``RandomSource`` instead of calling
``datetime.now()`` / ``random`` directly so tests can pin both.
"""

import random
from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol


class Clock(Protocol):
    """Source of the current instant."""

    def now(self) -> datetime:
        """Return the current time as an aware UTC datetime."""
        ...


class RandomSource(Protocol):
    """Source of random integers."""

    def randint(self, low: int, high: int) -> int:
        """Return a uniformly distributed integer in ``[low, high]``."""
        ...


class SystemClock:
    """Wall clock backed by ``datetime.now(timezone.utc)``."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FrozenClock:
    """Manually advanced clock for tests."""

    def __init__(self, start: Optional[datetime] = None):
        start = start or datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)
        if start.tzinfo is None:
            raise ValueError("FrozenClock requires an aware datetime")
        self._now = start

    def now(self) -> datetime:
        return self._now

    def set(self, value: datetime) -> None:
        if value.tzinfo is None:
            raise ValueError("FrozenClock requires an aware datetime")
        self._now = value

    def advance(self, **kwargs: float) -> datetime:
        """Move the clock forward, e.g. ``clock.advance(minutes=5)``."""
        self._now = self._now + timedelta(**kwargs)
        return self._now


class SystemRandomSource:
    """Random integers from the module-level ``random`` generator."""

    def randint(self, low: int, high: int) -> int:
        return random.randint(low, high)


class SeededRandomSource:
    """Deterministic random integers from a private ``random.Random``."""

    def __init__(self, seed: int = 0):
        self._random = random.Random(seed)

    def randint(self, low: int, high: int) -> int:
        return self._random.randint(low, high)


class FixedRandomSource:
    """Always returns the same value, clamped into the requested range."""

    def __init__(self, value: int):
        self.value = value

    def randint(self, low: int, high: int) -> int:
        return max(low, min(self.value, high))


# Shared defaults used when callers do not inject their own
system_clock = SystemClock()
system_random = SystemRandomSource()
