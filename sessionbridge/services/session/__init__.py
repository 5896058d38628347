"""Session registry and authentication state machine."""

from .models import PendingInputKind, Session, SessionState, can_transition
from .registry import SessionRegistry

__all__ = ["PendingInputKind", "Session", "SessionState", "SessionRegistry", "can_transition"]
