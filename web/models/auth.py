"""Authentication models for the SessionBridge web application."""

from typing import Any, Optional

from .common import ApiModel


class LoginRequest(ApiModel):
    """Start an automation login."""

    username: Optional[str] = None
    phone: Optional[str] = None
    delete_data: bool = False


class LoginResponse(ApiModel):
    """Login accepted; authentication continues in the background."""

    success: bool = True
    session_id: str
    message: str = "Login started"


class PendingInputResponse(ApiModel):
    """What the driver is currently waiting for."""

    success: bool = True
    pending_type: Optional[str] = None
    pending_data: Any = None
    authenticated: bool = False


class SubmitInputRequest(ApiModel):
    """User-entered value (passcode, card number, answer)."""

    session_id: Optional[str] = None
    value: Optional[str] = None


class NotifyCodeRequest(ApiModel):
    """Free-text notification carrying a one-time code."""

    message: Optional[str] = None
    username: Optional[str] = None
    source: str = "sms"


class NotifyCodeResponse(ApiModel):
    """Outcome of routing a notification."""

    success: bool = True
    queued: bool = False
    delivered: bool = False
    duplicate: bool = False
    ambiguous: bool = False
    session_id: Optional[str] = None


class LogoutRequest(ApiModel):
    """Close a session."""

    session_id: Optional[str] = None
    delete_data: bool = False
