"""Recurring task routes."""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from sessionbridge.services.bridge_service import BridgeService
from web.dependencies import get_bridge_service
from web.models import SetTasksRequest, TasksResponse

router = APIRouter(prefix="/schedule", tags=["schedule"])


@router.put("/tasks", response_model=TasksResponse)
async def set_tasks(
    body: SetTasksRequest,
    service: BridgeService = Depends(get_bridge_service),
) -> TasksResponse:
    """
    Replace the daily tasks of the session's user.

    Tasks fire once per calendar day, a random number of minutes after
    their target time, while the user has an authenticated session.
    """
    tasks = service.set_tasks(body.session_id, [t.model_dump() for t in body.tasks])
    return TasksResponse(tasks=tasks)


@router.get("/tasks", response_model=TasksResponse)
async def list_tasks(
    session_id: Optional[str] = Query(default=None, alias="sessionId"),
    service: BridgeService = Depends(get_bridge_service),
) -> TasksResponse:
    return TasksResponse(tasks=service.list_tasks(session_id))
