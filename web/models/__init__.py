"""Pydantic models for the SessionBridge web application."""

# Re-export all models for convenience
from .auth import (
    LoginRequest,
    LoginResponse,
    LogoutRequest,
    NotifyCodeRequest,
    NotifyCodeResponse,
    PendingInputResponse,
    SubmitInputRequest,
)
from .common import ApiModel, ErrorResponse, SuccessResponse
from .schedule import SetTasksRequest, TaskSpec, TasksResponse
from .session import (
    OperationRequest,
    OperationResponse,
    SessionInfoResponse,
    SessionStatsResponse,
)

__all__ = [
    # Common models
    "ApiModel",
    "ErrorResponse",
    "SuccessResponse",
    # Auth models
    "LoginRequest",
    "LoginResponse",
    "LogoutRequest",
    "NotifyCodeRequest",
    "NotifyCodeResponse",
    "PendingInputResponse",
    "SubmitInputRequest",
    # Session models
    "OperationRequest",
    "OperationResponse",
    "SessionInfoResponse",
    "SessionStatsResponse",
    # Schedule models
    "SetTasksRequest",
    "TaskSpec",
    "TasksResponse",
]
