"""
EntomoGuide Backend: Request ID Middleware
===========================================

What:  Assigns a short id to every request, returns it in `X-Request-ID`, and
       makes it available to every log record.
How:   The id lives in a ContextVar for the duration of the request.
       `RequestIDLogFilter` copies it onto each LogRecord so the log format
       can print `%(request_id)s`.
Who:   Every request; the exception handlers put the same id in error bodies.
"""

import logging
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# Coroutine-local: concurrent requests on one thread each see their own id
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


class RequestIDLogFilter(logging.Filter):
    """Adds `record.request_id` ("-" outside a request)."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "request_id", None):
            record.request_id = request_id_var.get() or "-"
        return True


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Uses the client's `X-Request-ID` when present (so the app can correlate
    its own error reports), otherwise generates an 8-character id.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        rid = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:8]
        request_id_var.set(rid)
        request.state.request_id = rid

        response = await call_next(request)
        response.headers["X-Request-ID"] = rid
        return response
