"""
BidBoard Backend - Request Logging Middleware
==============================================

What:  One access-log line per API request.
How:   Times the downstream call and logs method, path, status, duration,
       request id and the acting role. Level follows the status class:
       5xx ERROR, 4xx WARNING, everything else INFO.
Who:   Registered inside RequestIDMiddleware so the id is already set.

Example:
    PUT /api/applications/3f2c.../approve 409 12.4ms [a1b2c3d4] actor=client

Bodies are never logged: cover letters and feedback are user content.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from bidboard.middleware.request_id import request_id_var

logger = logging.getLogger("bidboard.access")

# Probed every few seconds by orchestrators
_QUIET_PATHS = frozenset({"/health"})


class RequestLoggingMiddleware(BaseHTTPMiddleware):

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in _QUIET_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start_time) * 1000

        status = response.status_code
        if status >= 500:
            log_level = logging.ERROR
        elif status >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        rid = request_id_var.get("")
        role = request.headers.get("X-Actor-Role", "-")
        logger.log(
            log_level,
            "%s %s %d %.1fms [%s] actor=%s",
            request.method,
            request.url.path,
            status,
            duration_ms,
            rid,
            role,
            extra={
                "request_id": rid,
                "method": request.method,
                "path": request.url.path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "actor_role": role,
            },
        )
        return response
