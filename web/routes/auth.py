"""Authentication routes: login, pending input, code notifications, logout."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from sessionbridge.services.bridge_service import BridgeService
from web.dependencies import get_bridge_service, limiter
from web.models import (
    LoginRequest,
    LoginResponse,
    LogoutRequest,
    NotifyCodeRequest,
    NotifyCodeResponse,
    PendingInputResponse,
    SubmitInputRequest,
    SuccessResponse,
)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", status_code=202, response_model=LoginResponse)
@limiter.limit("30/minute")
async def login(
    request: Request,
    body: LoginRequest,
    service: BridgeService = Depends(get_bridge_service),
) -> LoginResponse:
    """
    Start an automation login.

    Returns immediately; the client polls ``/auth/pending-input`` until the
    session reports ``authenticated``.
    """
    session_id = await service.start_login(
        body.username or "", body.phone or "", delete_data=body.delete_data
    )
    return LoginResponse(session_id=session_id)


@router.get("/pending-input", response_model=PendingInputResponse)
async def pending_input(
    session_id: Optional[str] = Query(default=None, alias="sessionId"),
    service: BridgeService = Depends(get_bridge_service),
) -> PendingInputResponse:
    """Report what the driver waits for, delivering a queued code first if one matches."""
    state = await service.get_pending_input(session_id)
    return PendingInputResponse(
        pending_type=state["pendingType"],
        pending_data=state["pendingData"],
        authenticated=state["authenticated"],
    )


@router.post("/submit-input", response_model=SuccessResponse)
async def submit_input(
    body: SubmitInputRequest,
    service: BridgeService = Depends(get_bridge_service),
) -> SuccessResponse:
    """Forward user input to the driver (400 when nothing is expected)."""
    await service.submit_input(body.session_id, body.value)
    return SuccessResponse(message="Input submitted")


@router.post("/notify-code", response_model=NotifyCodeResponse)
@limiter.limit("60/minute")
async def notify_code(
    request: Request,
    body: NotifyCodeRequest,
    service: BridgeService = Depends(get_bridge_service),
) -> NotifyCodeResponse:
    """Receive a forwarded SMS and route its code to a waiting session or the queue."""
    result = await service.notify_code(body.message or "", body.username, body.source)
    return NotifyCodeResponse(
        queued=result.queued,
        delivered=result.delivered,
        duplicate=result.duplicate,
        ambiguous=result.ambiguous,
        session_id=result.session_id,
    )


@router.post("/logout", response_model=SuccessResponse)
async def logout(
    body: LogoutRequest,
    service: BridgeService = Depends(get_bridge_service),
) -> SuccessResponse:
    """Close the session; succeeds even if it is already gone."""
    closed = await service.logout(body.session_id, delete_data=body.delete_data)
    return SuccessResponse(message="Logged out" if closed else "Session already closed")
