"""Routes package for the SessionBridge web application."""

from .auth import router as auth_router
from .health import router as health_router
from .schedule import router as schedule_router
from .session import router as session_router

__all__ = ["auth_router", "health_router", "schedule_router", "session_router"]
