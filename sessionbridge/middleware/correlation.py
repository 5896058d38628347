"""Request id middleware.

Every log line written while a request is handled carries its id (see the
patcher in ``core.logger``), so a client-reported ``X-Request-ID`` can be
traced through login, polling and code delivery.
"""

import uuid
from typing import Awaitable, Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from ..core.logger import correlation_id_ctx

HEADER_NAME = "X-Request-ID"


class CorrelationMiddleware(BaseHTTPMiddleware):
    """Bind the request id to the logging context and echo it in the response."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        request_id = request.headers.get(HEADER_NAME) or uuid.uuid4().hex

        token = correlation_id_ctx.set(request_id)
        try:
            response = await call_next(request)
        finally:
            correlation_id_ctx.reset(token)

        response.headers[HEADER_NAME] = request_id
        return response

