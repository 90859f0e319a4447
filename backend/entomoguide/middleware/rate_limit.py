"""
EntomoGuide Backend: Authentication Rate Limiting
==================================================

What:  Per-IP sliding-window limit on POST /login and POST /clientes.
How:   Keeps the timestamps of recent attempts per IP in memory; once an IP
       reaches `max_requests` within `window_seconds` it gets 429 with a
       Retry-After header until the oldest attempt leaves the window.
Who:   Only the credential endpoints; everything else passes straight through.

Single-process only: the counters live in this worker's memory.
"""

import logging
import time
from collections import defaultdict
from typing import Dict, FrozenSet, List, Tuple

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from entomoguide.exceptions import RateLimitExceededError
from entomoguide.middleware.request_id import request_id_var

logger = logging.getLogger(__name__)

LIMITED_ROUTES: FrozenSet[Tuple[str, str]] = frozenset(
    {("POST", "/login"), ("POST", "/clientes")}
)


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, max_requests: int = 20, window_seconds: int = 60, **kwargs):
        super().__init__(app, **kwargs)
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._requests: Dict[str, List[float]] = defaultdict(list)

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if (request.method, request.url.path) not in LIMITED_ROUTES:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        now = time.time()
        window_start = now - self.window_seconds

        recent = [ts for ts in self._requests[client_ip] if ts > window_start]
        self._requests[client_ip] = recent

        if len(recent) >= self.max_requests:
            retry_after = int(recent[0] + self.window_seconds - now) + 1
            logger.warning(
                "Rate limit exceeded for IP %s on %s: %d attempts in %ds",
                client_ip,
                request.url.path,
                len(recent),
                self.window_seconds,
            )
            exc = RateLimitExceededError(retry_after=retry_after)
            return JSONResponse(
                status_code=429,
                content={
                    "error": "rate_limit_exceeded",
                    "message": exc.message,
                    "details": exc.context,
                    "request_id": request_id_var.get(""),
                },
                headers={"Retry-After": str(exc.retry_after)},
            )

        recent.append(now)

        if len(self._requests) > 10_000:
            self._cleanup_inactive_ips(window_start)

        return await call_next(request)

    def _cleanup_inactive_ips(self, window_start: float) -> None:
        inactive = [
            ip for ip, timestamps in self._requests.items()
            if not timestamps or timestamps[-1] <= window_start
        ]
        for ip in inactive:
            del self._requests[ip]
        logger.debug("Cleaned up %d inactive IP entries", len(inactive))
