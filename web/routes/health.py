"""Health check endpoints."""

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends

from sessionbridge import __version__
from sessionbridge.services.bridge_service import BridgeService
from web.dependencies import get_bridge_service

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(service: BridgeService = Depends(get_bridge_service)) -> Dict[str, Any]:
    """
    Health check endpoint for monitoring and container orchestration.

    Returns:
        Health status with per-session lifetime
    """
    return {
        "success": True,
        "status": "healthy",
        "version": __version__,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        **service.health(),
    }


@router.get("/ping")
async def ping() -> Dict[str, Any]:
    """Liveness probe."""
    return {"success": True, "message": "pong"}
