"""Exception handlers producing the ``{"success": false, ...}`` envelope."""

from typing import List, Tuple, Type

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException

from sessionbridge.core.exceptions import (
    AuthenticationError,
    ConfigurationError,
    DriverError,
    NotFoundError,
    SessionBridgeError,
    ValidationError,
)

# Checked in order; subclasses must precede their bases
_STATUS_BY_ERROR: List[Tuple[Type[SessionBridgeError], int]] = [
    (ValidationError, 400),
    (AuthenticationError, 401),
    (NotFoundError, 404),
    (ConfigurationError, 503),
    (DriverError, 502),
]


def status_for(exc: SessionBridgeError) -> int:
    """HTTP status code for a domain error."""
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 500


def error_response(status_code: int, message: str, error_type: str, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": message, "type": error_type, **extra},
    )


async def bridge_exception_handler(request: Request, exc: SessionBridgeError) -> JSONResponse:
    """Map domain errors to their HTTP status."""
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.to_dict()}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.message}")
    return error_response(status_code, exc.message, exc.__class__.__name__)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Wrap Starlette HTTP errors (404 routes, 405 methods) in the envelope."""
    detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    response = error_response(exc.status_code, detail, "HTTPException")
    for name, value in (getattr(exc, "headers", None) or {}).items():
        response.headers[name] = value
    return response


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Malformed request bodies are a 400, like any other validation failure."""
    errors = {}
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"] if loc != "body")
        errors[field] = error["msg"]

    return error_response(400, "Request validation failed", "ValidationError", errors=errors)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return error_response(500, "Internal server error", exc.__class__.__name__)


async def rate_limit_exception_handler(
    request: Request, exc: RateLimitExceeded
) -> JSONResponse:
    logger.warning(f"Rate limit exceeded on {request.url.path}: {exc.detail}")
    return error_response(429, f"Rate limit exceeded: {exc.detail}", "RateLimitExceeded")
