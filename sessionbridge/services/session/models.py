"""Data models for the session registry.

This module contains the session state machine and the kinds of input a
driver can ask the user for.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, FrozenSet, Optional

if TYPE_CHECKING:
    from ..drivers.base import AutomationDriver


class SessionState(Enum):
    """Authentication state of a session."""

    CREATED = "created"
    AWAITING_INPUT = "awaiting_input"
    AUTHENTICATED = "authenticated"
    CLOSED = "closed"


# Allowed transitions; any state may additionally go to CLOSED
_TRANSITIONS: Dict[SessionState, FrozenSet[SessionState]] = {
    SessionState.CREATED: frozenset({SessionState.AWAITING_INPUT, SessionState.AUTHENTICATED}),
    SessionState.AWAITING_INPUT: frozenset(
        {SessionState.AWAITING_INPUT, SessionState.AUTHENTICATED}
    ),
    SessionState.AUTHENTICATED: frozenset(),
    SessionState.CLOSED: frozenset(),
}


def can_transition(current: SessionState, target: SessionState) -> bool:
    """Return True if the state machine allows ``current -> target``."""
    if current is SessionState.CLOSED:
        return False
    if target is SessionState.CLOSED:
        return True
    return target in _TRANSITIONS[current]


class PendingInputKind(str, Enum):
    """Kind of input a driver is waiting for."""

    SMS = "sms"
    SECONDARY_SMS = "secondary_sms"
    CARD = "card"
    QUESTION = "dynamic-question"

    @property
    def is_passcode(self) -> bool:
        """Whether the input is a one-time code that may arrive out of band."""
        return self in (PendingInputKind.SMS, PendingInputKind.SECONDARY_SMS)

    @classmethod
    def parse(cls, value: Any) -> Optional["PendingInputKind"]:
        """
        Normalize a driver-reported value.

        Drivers may report placeholder values such as ``"waiting"`` or
        ``"error"`` between prompts; those mean nothing is pending.
        """
        if value is None or isinstance(value, cls):
            return value
        try:
            return cls(str(value))
        except ValueError:
            return None


@dataclass
class Session:
    """
    An automation session owned by the registry.

    Attributes:
        session_id: Registry-generated opaque token
        username: Owner of the session (at most one live session per username)
        driver: Automation driver handle owned by this session
        state: Current state in the authentication state machine
        pending_input_kind: Last input kind reported by the driver
        created_at: Creation timestamp (UTC)
        last_activity_at: Last time a client touched the session (UTC)
        authenticated_at: Set once, on the transition into AUTHENTICATED
        metadata: Free-form data attached by recurring operations
    """

    session_id: str
    username: str
    driver: "AutomationDriver"
    created_at: datetime
    last_activity_at: datetime
    state: SessionState = SessionState.CREATED
    pending_input_kind: Optional[PendingInputKind] = None
    authenticated_at: Optional[datetime] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    login_task: Optional["asyncio.Task[Any]"] = field(default=None, repr=False, compare=False)

    @property
    def is_closed(self) -> bool:
        return self.state is SessionState.CLOSED

    @property
    def is_authenticated(self) -> bool:
        return self.state is SessionState.AUTHENTICATED

    def to_public_dict(self) -> Dict[str, Any]:
        """Session info without the driver handle."""
        return {
            "sessionId": self.session_id,
            "username": self.username,
            "state": self.state.value,
            "authenticated": self.is_authenticated,
            "pendingInputKind": self.pending_input_kind.value if self.pending_input_kind else None,
            "createdAt": self.created_at.isoformat(),
            "lastActivityAt": self.last_activity_at.isoformat(),
            "authenticatedAt": self.authenticated_at.isoformat() if self.authenticated_at else None,
        }
