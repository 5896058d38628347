"""Session inspection and on-demand operation routes."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from sessionbridge.services.bridge_service import BridgeService
from web.dependencies import get_bridge_service, limiter
from web.models import (
    OperationRequest,
    OperationResponse,
    SessionInfoResponse,
    SessionStatsResponse,
)

router = APIRouter(prefix="/session", tags=["session"])


@router.get("/stats", response_model=SessionStatsResponse)
async def session_stats(
    session_id: Optional[str] = Query(default=None, alias="sessionId"),
    service: BridgeService = Depends(get_bridge_service),
) -> SessionStatsResponse:
    return SessionStatsResponse(stats=service.get_session_stats(session_id))


@router.get("/info", response_model=SessionInfoResponse)
async def session_info(
    session_id: Optional[str] = Query(default=None, alias="sessionId"),
    service: BridgeService = Depends(get_bridge_service),
) -> SessionInfoResponse:
    return SessionInfoResponse(session=service.get_session_info(session_id))


@router.post("/operation", response_model=OperationResponse)
@limiter.limit("30/minute")
async def run_operation(
    request: Request,
    body: OperationRequest,
    service: BridgeService = Depends(get_bridge_service),
) -> OperationResponse:
    """
    Run a driver operation now.

    401 until the session is authenticated; driver failures are a 502.
    """
    result = await service.run_operation(body.session_id, body.operation)
    return OperationResponse(success=result.success, error=result.error, data=result.data)
