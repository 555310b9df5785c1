"""
StudyCare Backend — Request ID Middleware
===========================================

What:  Assigns a short correlation ID to each request, exposes it to every
       log record emitted while the request is handled, and echoes it in the
       X-Request-ID response header.
Why:   Lets one user-visible failure be matched to every log line it caused,
       including lines from services that never see the Request object.
How:   A ContextVar holds the ID for the current task; `RequestIDLogFilter`
       copies it onto each LogRecord as `record.request_id`, which the
       format string in main.setup_logging prints.
"""

import logging
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# Coroutine-local: concurrent requests on one event loop each see their own ID
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


class RequestIDLogFilter(logging.Filter):
    """
    Adds `request_id` to every record passing through the handler.

    Records logged outside a request (startup, background tasks after the
    response) get "-" so the format string never fails.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "request_id", None):
            record.request_id = request_id_var.get("") or "-"
        return True


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Behavior:
        1. Use the client's X-Request-ID header when present (frontend tracing)
        2. Otherwise generate an 8-character ID from a UUID4
        3. Store it in the ContextVar and on request.state
        4. Return it in the X-Request-ID response header
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        rid = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:8]

        token = request_id_var.set(rid)
        request.state.request_id = rid
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)

        response.headers["X-Request-ID"] = rid
        return response
