"""
StudyCare Backend — Request Logging Middleware
================================================

What:  One access-log line per HTTP request: method, path, status, duration,
       client IP and (when authenticated) the caller's user id.
Why:   Request-level visibility for debugging and latency analysis.
How:   Times the downstream call with perf_counter and picks the log level
       from the status class (5xx → ERROR, 4xx → WARNING, else INFO).

What we log vs what we DON'T log (privacy):
    ✅ Log: method, path, status, duration, IP, request ID, user id
    ❌ Don't log: request bodies (chat text, symptoms, notes), bearer tokens
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from studycare.middleware.request_id import request_id_var

logger = logging.getLogger("studycare.access")


def client_ip_of(request: Request) -> str:
    """First X-Forwarded-For hop when behind a proxy, else the socket peer."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs structured information about each HTTP request and response."""

    # Probes hit these every few seconds
    SILENT_PATHS = {"/health"}

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in self.SILENT_PATHS:
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

        user_id = getattr(request.state, "user_id", None) or "anonymous"
        client_ip = client_ip_of(request)

        logger.log(
            log_level,
            "%s %s %d %.1fms user=%s from %s",
            request.method,
            request.url.path,
            status,
            duration_ms,
            user_id,
            client_ip,
            extra={
                "request_id": request_id_var.get(""),
                "method": request.method,
                "path": request.url.path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "client_ip": client_ip,
                "user_id": user_id,
            },
        )

        return response
