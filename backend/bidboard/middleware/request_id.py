"""
BidBoard Backend - Request ID Middleware
=========================================

What:  Tags every request with a correlation id and echoes it in X-Request-ID.
How:   Reuses a caller-supplied X-Request-ID when it looks sane, otherwise
       generates a short one. The id lives in a ContextVar so loggers and
       exception handlers can read it without the Request object.
Who:   Outermost project middleware; RequestLoggingMiddleware and the error
       handlers in main.py read request_id_var.
"""

import re
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# Coroutine-local: concurrent requests on one thread each see their own id
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

# Gateway ids are forwarded as-is; anything else (log injection, huge values) is replaced
_ACCEPTED_ID = re.compile(r"^[A-Za-z0-9._-]{1,64}$")


def new_request_id() -> str:
    return uuid.uuid4().hex[:8]


class RequestIDMiddleware(BaseHTTPMiddleware):

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        supplied = request.headers.get("X-Request-ID", "")
        rid = supplied if _ACCEPTED_ID.match(supplied) else new_request_id()

        token = request_id_var.set(rid)
        request.state.request_id = rid
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)

        response.headers["X-Request-ID"] = rid
        return response
