"""
EntomoGuide Backend: Request Logging Middleware
================================================

What:  One access-log line per request: method, path, status, duration,
       client IP and, when the request carried a valid token, the account id.
How:   Measures around `call_next`; picks the level from the status code.
Who:   Every request except /health.

Never logged: request bodies (passwords), the Authorization header, file
contents.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("entomoguide.access")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    QUIET_PATHS = {"/health"}

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in self.QUIET_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        client_ip = request.client.host if request.client else "unknown"

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000
        status = response.status_code
        if status >= 500:
            log_level = logging.ERROR
        elif status >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        # Set by the auth dependency; absent on public routes
        claim = getattr(request.state, "claim", None)
        account = claim.account_id if claim is not None else "-"

        logger.log(
            log_level,
            "%s %s %d %.1fms account=%s from %s",
            request.method,
            request.url.path,
            status,
            duration_ms,
            account,
            client_ip,
        )
        return response
