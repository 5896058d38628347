"""Shared dependencies for the SessionBridge web application."""

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from sessionbridge.services.bridge_service import BridgeService

# Enabled/disabled per application in create_app()
limiter = Limiter(key_func=get_remote_address)


def get_bridge_service(request: Request) -> BridgeService:
    """Return the service instance attached to the running application."""
    return request.app.state.service
