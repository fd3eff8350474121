"""
CoffeeTime AI Backend: Request Logging Middleware
=================================================

What:  One access-log line per HTTP request with status and duration. Lines
       for /api/ai/* also say which provider and model served the request and
       where its key came from (caller, user_settings, fallback).
How:   Before an AI request runs, the middleware installs an empty dict in
       `ai_call_var`. AITaskService fills it through `record_ai_call()` once
       the configuration is resolved. The dict is shared, so the fields are
       visible to the middleware after `call_next` returns.
Who:   Applied to every request via Starlette middleware.
When:  After RequestIDMiddleware, so the request id is available.

Logged: method, path, status, duration, client IP, request id, and for AI
        calls the provider, model and key source.
Never logged: request bodies or keys. They carry API keys, photos and
        transcripts.

Example:
    POST /api/ai/parse-voice 200 2412.7ms [a1b2c3d4] from 10.0.0.7
        provider=gemini model=gemini-3-flash-preview key=fallback
"""

import logging
import time
from contextvars import ContextVar
from typing import Dict, Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from coffeetime.middleware.request_id import request_id_var

logger = logging.getLogger("coffeetime.access")

AI_PATH_PREFIX = "/api/ai/"

# Hit every few seconds by orchestrators
_QUIET_PATHS = frozenset({"/health"})

ai_call_var: ContextVar[Optional[Dict[str, str]]] = ContextVar("ai_call", default=None)


def record_ai_call(**fields: str) -> None:
    """Attach provider details to the current request's access-log line."""
    call = ai_call_var.get()
    if call is not None:
        call.update(fields)


def describe_ai_call(call: Dict[str, str]) -> str:
    parts = []
    for label, key in (("provider", "provider"), ("model", "model_id"), ("key", "key_source")):
        if call.get(key):
            parts.append(f"{label}={call[key]}")
    return " ".join(parts)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path in _QUIET_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        client_ip = request.client.host if request.client else "unknown"
        rid = request_id_var.get("")

        call: Dict[str, str] = {}
        token = ai_call_var.set(call) if path.startswith(AI_PATH_PREFIX) else None
        try:
            response = await call_next(request)
        finally:
            if token is not None:
                ai_call_var.reset(token)

        duration_ms = (time.perf_counter() - start_time) * 1000
        status = response.status_code
        if status >= 500:
            log_level = logging.ERROR
        elif status >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        message = "%s %s %d %.1fms [%s] from %s"
        args = [request.method, path, status, duration_ms, rid, client_ip]
        summary = describe_ai_call(call)
        if summary:
            message += " %s"
            args.append(summary)

        logger.log(
            log_level,
            message,
            *args,
            extra={
                "request_id": rid,
                "method": request.method,
                "path": path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "client_ip": client_ip,
                "ai_call": dict(call),
            },
        )
        return response
