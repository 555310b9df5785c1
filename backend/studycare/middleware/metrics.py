"""
StudyCare Backend — Metrics Middleware
========================================

Feeds every request's method, final status and duration into the
application's MetricsCollector. The collector is passed in by create_app()
rather than imported, so each app instance (and each test) has its own.
"""

import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from studycare.services.metrics import MetricsCollector


class MetricsMiddleware(BaseHTTPMiddleware):

    def __init__(self, app, collector: MetricsCollector):
        super().__init__(app)
        self.collector = collector

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        self.collector.start_request()
        start_time = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            duration_ms = (time.perf_counter() - start_time) * 1000
            self.collector.record_request(request.method, status_code, round(duration_ms, 2))
