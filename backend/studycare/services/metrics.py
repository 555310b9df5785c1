"""
StudyCare Backend — Request Metrics Collector
===============================================

What:  Process-local counters behind GET /metrics: request totals by method
       and status, response-time statistics over the most recent samples,
       error counts by type, in-flight request gauge, uptime and memory.
Why:   A zero-dependency operational view that works without a metrics stack.
How:   MetricsMiddleware calls `start_request` / `record_request`; the global
       exception handler calls `record_error`. `snapshot()` computes the
       derived numbers on demand.

Percentiles:
    Sorted sample list, value at index floor(n × q). With 1000 samples p95 is
    the 951st fastest response. Only the latest `sample_size` durations are
    kept, so the statistics describe recent traffic, not the whole uptime.

Memory:
    `used` is this process's resident set size, `total` is the machine's
    physical memory, both from psutil.

Lifecycle & concurrency:
    One instance per application (app.state.metrics); reset on restart.
    Unsynchronized: all mutation happens between awaits on the event loop.
"""

import math
import time
from collections import defaultdict, deque
from typing import Any, Deque, Dict

import psutil
from fastapi import Request


class MetricsCollector:

    def __init__(self, sample_size: int = 1000):
        self.sample_size = sample_size
        self._process = psutil.Process()
        self.reset()

    def reset(self) -> None:
        self.start_time = time.time()
        self.requests_total = 0
        self.requests_by_method: Dict[str, int] = defaultdict(int)
        self.requests_by_status: Dict[int, int] = defaultdict(int)
        self.response_times: Deque[float] = deque(maxlen=self.sample_size)
        self.errors_total = 0
        self.errors_by_type: Dict[str, int] = defaultdict(int)
        self.active_connections = 0

    # ── Recording ─────────────────────────────────────────────────────────
    def start_request(self) -> None:
        self.active_connections += 1

    def record_request(self, method: str, status_code: int, duration_ms: float) -> None:
        self.requests_total += 1
        self.requests_by_method[method] += 1
        self.requests_by_status[status_code] += 1
        self.response_times.append(duration_ms)
        self.active_connections = max(0, self.active_connections - 1)

    def record_error(self, error_type: str) -> None:
        self.errors_total += 1
        self.errors_by_type[error_type] += 1

    # ── Reporting ─────────────────────────────────────────────────────────
    @staticmethod
    def percentile(sorted_values, q: float) -> float:
        if not sorted_values:
            return 0.0
        index = min(len(sorted_values) - 1, math.floor(len(sorted_values) * q))
        return sorted_values[index]

    def snapshot(self) -> Dict[str, Any]:
        times = sorted(self.response_times)
        used = self._process.memory_info().rss
        total = psutil.virtual_memory().total

        return {
            "requests": {
                "total": self.requests_total,
                "by_method": dict(self.requests_by_method),
                "by_status": {str(k): v for k, v in self.requests_by_status.items()},
            },
            "response_times": {
                "average": round(sum(times) / len(times), 2) if times else 0.0,
                "min": times[0] if times else 0.0,
                "max": times[-1] if times else 0.0,
                "p95": self.percentile(times, 0.95),
                "p99": self.percentile(times, 0.99),
            },
            "errors": {
                "total": self.errors_total,
                "by_type": dict(self.errors_by_type),
            },
            "active_connections": self.active_connections,
            "uptime_seconds": round(time.time() - self.start_time, 2),
            "memory": {
                "used": used,
                "total": total,
                "percentage": round(used / total * 100, 2) if total else 0.0,
            },
        }


def get_metrics(request: Request) -> MetricsCollector:
    """FastAPI dependency: the application's metrics collector."""
    return request.app.state.metrics
