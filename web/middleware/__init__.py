"""Middleware package for the SessionBridge web application."""

from .security_headers import SecurityHeadersMiddleware

__all__ = ["SecurityHeadersMiddleware"]
