"""Capability contract between the bridge and automation drivers.

The bridge never looks inside a driver; it only calls the methods below.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol, runtime_checkable

from ..session.models import PendingInputKind


@dataclass
class LoginResult:
    """
    Outcome of ``AutomationDriver.login``.

    Attributes:
        success: Whether the site accepted the login
        error: Human readable failure reason
        fatal: The driver cannot continue; the session must be closed
    """

    success: bool
    error: Optional[str] = None
    fatal: bool = False


@dataclass
class OperationResult:
    """Outcome of a named driver operation (fetch data, transfer, ...)."""

    success: bool
    error: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class AutomationDriver(Protocol):
    """One driver instance per session."""

    async def init(self) -> None: ...

    async def login(self) -> LoginResult: ...

    def get_pending_input_type(self) -> Optional[PendingInputKind]: ...

    def get_pending_input_data(self) -> Any: ...

    def submit_user_input(self, value: str) -> bool: ...

    def get_session_stats(self) -> Dict[str, Any]: ...

    async def close(self, delete_data: bool = False) -> None: ...

    async def execute(self, operation: str) -> OperationResult: ...
