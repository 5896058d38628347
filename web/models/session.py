"""Session models for the SessionBridge web application."""

from typing import Any, Dict, Optional

from pydantic import Field

from .common import ApiModel


class SessionStatsResponse(ApiModel):
    """Driver-reported statistics (``lifetimeMinutes`` and more)."""

    success: bool = True
    stats: Dict[str, Any]


class SessionInfoResponse(ApiModel):
    """Public session information."""

    success: bool = True
    session: Dict[str, Any]


class OperationRequest(ApiModel):
    """Run a named driver operation (for example ``balance``)."""

    session_id: Optional[str] = None
    operation: Optional[str] = None


class OperationResponse(ApiModel):
    """Driver-reported outcome of an operation."""

    success: bool
    error: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)
