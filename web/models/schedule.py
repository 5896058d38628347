"""Recurring task models for the SessionBridge web application."""

from typing import Any, Dict, List, Optional, Union

from pydantic import Field, field_validator

from sessionbridge.services.scheduling.time_utils import normalize_time_string

from .common import ApiModel


class TaskSpec(ApiModel):
    """One daily task; the target time accepts HH:MM, decimal hours or day fractions."""

    name: str = Field(..., min_length=1, max_length=64)
    operation: str = Field(..., min_length=1, max_length=64)
    target_local_time: Union[str, float]
    timezone: Optional[str] = None
    jitter_min: Optional[int] = Field(default=None, ge=0, le=720)
    jitter_max: Optional[int] = Field(default=None, ge=0, le=720)

    @field_validator("target_local_time")
    @classmethod
    def normalize_target(cls, v: Union[str, float]) -> str:
        """Normalize loosely formatted times to HH:MM."""
        normalized = normalize_time_string(v)
        if normalized is None:
            raise ValueError(f"Invalid time: {v!r}")
        return normalized


class SetTasksRequest(ApiModel):
    """Replace the recurring tasks of the session's user."""

    session_id: Optional[str] = None
    tasks: List[TaskSpec] = Field(default_factory=list, max_length=16)


class TasksResponse(ApiModel):
    """Tasks with a preview of their next run."""

    success: bool = True
    tasks: List[Dict[str, Any]]
