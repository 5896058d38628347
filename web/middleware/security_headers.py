"""Security headers middleware for the SessionBridge API."""

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

# JSON-only API: nothing may be embedded, scripted or framed
API_CSP = "default-src 'none'; frame-ancestors 'none'; base-uri 'none'"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    def __init__(self, app, strict_transport: bool = True):
        super().__init__(app)
        self.strict_transport = strict_transport

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "no-referrer"
        response.headers["Cache-Control"] = "no-store"
        response.headers["Content-Security-Policy"] = API_CSP

        if self.strict_transport:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response
