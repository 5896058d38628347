"""Pytest configuration and common fixtures."""

import asyncio
import os
import sys
import warnings
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

# Try to load test-specific environment file if it exists
test_env_file = Path(__file__).parent / ".env.test"
if test_env_file.exists():
    load_dotenv(test_env_file)

# Set environment variables BEFORE any sessionbridge imports
os.environ.setdefault("ENV", "testing")

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest
from cryptography.fernet import Fernet

from sessionbridge.core.clock import FixedRandomSource, FrozenClock
from sessionbridge.core.config.settings import BridgeSettings, reset_settings
from sessionbridge.services.drivers.base import LoginResult, OperationResult
from sessionbridge.services.otp.bridge import PendingInputBridge
from sessionbridge.services.otp.queue import PendingCodeQueue
from sessionbridge.services.session.models import PendingInputKind
from sessionbridge.services.session.registry import SessionRegistry


def pytest_configure(config):
    """Configure pytest environment before tests run."""
    warnings.filterwarnings("ignore", message="coroutine.*was never awaited")


@pytest.fixture(autouse=True)
def setup_test_environment(monkeypatch):
    """Automatically set up test environment for all tests."""
    monkeypatch.setenv("ENV", "testing")
    monkeypatch.setenv("ENCRYPTION_KEY", Fernet.generate_key().decode())
    monkeypatch.delenv("ENCRYPTION_KEY_OLD", raising=False)
    monkeypatch.delenv("DRIVER_FACTORY", raising=False)

    # Reset settings singleton so each test gets fresh settings
    reset_settings()
    yield
    reset_settings()


class FakeDriver:
    """
    In-memory automation driver.

    ``login`` keeps running while something is pending, like a real flow
    blocked on a prompt, and succeeds once the prompt is answered.
    """

    def __init__(
        self,
        username: str = "alice",
        phone: str = "+79990000000",
        pending: Optional[PendingInputKind] = None,
        submit_delay: Optional[float] = None,
        **kwargs: Any,
    ):
        self.username = username
        self.phone = phone
        self.pending: Any = pending
        self.pending_data: Any = None
        self.submit_delay = submit_delay
        self.accept_input = True
        self.submitted: List[str] = []
        self.close_calls: List[bool] = []
        self.close_error: Optional[Exception] = None
        self.close_delay: Optional[float] = None
        self.login_result = LoginResult(success=True)
        self.login_error: Optional[Exception] = None
        self.init_calls = 0
        self.executed: List[str] = []
        self.execute_result = OperationResult(success=True, data={"balance": 100})
        self.execute_error: Optional[Exception] = None
        self.execute_delay: Optional[float] = None
        self.stats: Dict[str, Any] = {"lifetimeMinutes": 0, "sessionActive": True}

    @property
    def closed(self) -> bool:
        return bool(self.close_calls)

    async def init(self) -> None:
        self.init_calls += 1

    async def login(self) -> LoginResult:
        while self.pending is not None and not self.closed:
            await asyncio.sleep(0.01)
        if self.login_error is not None:
            raise self.login_error
        return self.login_result

    def get_pending_input_type(self):
        return self.pending

    def get_pending_input_data(self):
        return self.pending_data

    def submit_user_input(self, value: str):
        if self.submit_delay is not None:
            return self._submit_later(value)
        return self._accept(value)

    async def _submit_later(self, value: str) -> bool:
        # Yields to the loop between the pending check and the hand-off
        if self.pending is None or not self.accept_input:
            return False
        await asyncio.sleep(self.submit_delay)
        # No second check: a racing submitter that passed the first one is recorded
        self.submitted.append(value)
        self.pending = None
        return True

    def _accept(self, value: str) -> bool:
        if self.pending is None or not self.accept_input:
            return False
        self.submitted.append(value)
        self.pending = None
        return True

    def get_session_stats(self) -> Dict[str, Any]:
        return dict(self.stats)

    async def close(self, delete_data: bool = False) -> None:
        self.close_calls.append(delete_data)
        if self.close_delay is not None:
            await asyncio.sleep(self.close_delay)
        if self.close_error is not None:
            raise self.close_error

    async def execute(self, operation: str) -> OperationResult:
        self.executed.append(operation)
        if self.execute_delay is not None:
            await asyncio.sleep(self.execute_delay)
        if self.execute_error is not None:
            raise self.execute_error
        return self.execute_result


class FakeDriverFactory:
    """Driver factory recording every driver it creates."""

    def __init__(self, pending: Optional[PendingInputKind] = None):
        self.pending = pending
        self.drivers: List[FakeDriver] = []
        self.calls: List[Dict[str, Any]] = []

    def __call__(self, username: str, phone: str, **kwargs: Any) -> FakeDriver:
        self.calls.append({"username": username, "phone": phone, **kwargs})
        driver = FakeDriver(username=username, phone=phone, pending=self.pending)
        self.drivers.append(driver)
        return driver

    def latest(self) -> FakeDriver:
        return self.drivers[-1]


@pytest.fixture
def clock() -> FrozenClock:
    """Frozen at 2024-01-15 12:00 UTC (15:00 in Moscow)."""
    return FrozenClock(datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def rng() -> FixedRandomSource:
    return FixedRandomSource(5)


@pytest.fixture
def registry(clock) -> SessionRegistry:
    return SessionRegistry(clock=clock)


@pytest.fixture
def queue(clock) -> PendingCodeQueue:
    return PendingCodeQueue(clock=clock)


@pytest.fixture
def bridge(registry, queue, clock) -> PendingInputBridge:
    return PendingInputBridge(registry, queue, clock=clock)


@pytest.fixture
def driver_factory() -> FakeDriverFactory:
    return FakeDriverFactory()


@pytest.fixture
def test_settings() -> BridgeSettings:
    """Settings for service and route tests (no log files, no rate limits)."""
    return BridgeSettings(
        env="testing",
        log_dir=None,
        rate_limit_enabled=False,
        encryption_key=None,
        _env_file=None,
    )
