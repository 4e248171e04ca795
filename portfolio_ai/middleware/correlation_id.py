# Correlation-ID middleware: reuse X-Correlation-ID or mint one, scope it to the request's log lines, echo it back.
import uuid
from typing import Callable

import structlog.contextvars
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

HEADER_CORRELATION_ID = "X-Correlation-ID"


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Bind correlation_id and path for every log line of the request."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = request.headers.get(HEADER_CORRELATION_ID, "").strip() or str(uuid.uuid4())
        # bound_contextvars restores the process-wide bindings (service, env) afterwards
        with structlog.contextvars.bound_contextvars(correlation_id=correlation_id, path=request.url.path):
            response = await call_next(request)
        response.headers[HEADER_CORRELATION_ID] = correlation_id
        return response
