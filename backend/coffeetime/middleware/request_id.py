"""
CoffeeTime AI Backend: Request ID Middleware
============================================

What:  Assigns a correlation id to each request and echoes it back.
How:   Uses the client's X-Request-ID header when present, otherwise an
       8-character uuid prefix. The id is stored in a ContextVar (for loggers
       and exception handlers) and in request.state (for route handlers).
Who:   Applied to every request via Starlette middleware.
When:  Runs before the logging middleware.

Error bodies carry the same id as `request_id`, so a user reporting
"analysis failed" can hand support the id that matches the server logs.
"""

import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# Coroutine-local: concurrent requests on one event loop each see their own id
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

REQUEST_ID_HEADER = "X-Request-ID"


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        rid = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())[:8]
        request_id_var.set(rid)
        request.state.request_id = rid

        response = await call_next(request)

        response.headers[REQUEST_ID_HEADER] = rid
        return response
