"""
StudyCare Backend — Rate Limiting Middleware
==============================================

What:  Per-IP sliding window rate limits, applied as a stack of policies.
Why:   Protects the API and the paid AI quota from abuse, and slows down
       credential stuffing on register/login.
How:   Each policy owns a SlidingWindowLimiter keyed by client IP. A request
       is checked against every policy whose path prefix matches; the first
       exhausted policy answers 429 with a Retry-After header.

Policies (defaults from settings):
    ┌─────────┬──────────────────────────────┬──────────────┬────────────────────────┐
    │ Policy  │ Applies to                   │ Limit        │ Notes                  │
    ├─────────┼──────────────────────────────┼──────────────┼────────────────────────┤
    │ general │ every path except probes     │ 100 / 15 min │                        │
    │ auth    │ /api/auth                    │   5 / 15 min │ successes not counted  │
    │ api     │ feature routes under /api    │  60 / 1 min  │                        │
    └─────────┴──────────────────────────────┴──────────────┴────────────────────────┘

Algorithm: Sliding Window Log
    1. Each key keeps a deque of request timestamps
    2. Timestamps older than the window are dropped on every check
    3. If the remaining count >= limit, reject with 429
    4. Otherwise append the current timestamp

Process-local state: counters reset on restart and are not shared between
workers. Safe under asyncio because no await happens between the check and
the append.
"""

import logging
import time
from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Optional, Tuple

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from studycare.config import settings
from studycare.exceptions import RateLimitExceededError
from studycare.middleware.logging import client_ip_of

logger = logging.getLogger(__name__)


class SlidingWindowLimiter:
    """Timestamp-log limiter: at most `limit` hits per `window` seconds per key."""

    def __init__(self, limit: int, window: float):
        self.limit = limit
        self.window = window
        self._hits: Dict[str, Deque[float]] = defaultdict(deque)

    def _prune(self, key: str, now: float) -> Deque[float]:
        hits = self._hits[key]
        window_start = now - self.window
        while hits and hits[0] <= window_start:
            hits.popleft()
        return hits

    def hit(self, key: str, now: Optional[float] = None) -> Optional[int]:
        """
        Record a hit for `key`.

        Returns:
            None when allowed; otherwise seconds until the oldest hit leaves
            the window (the Retry-After value). Rejected hits are not recorded.
        """
        now = time.time() if now is None else now
        hits = self._prune(key, now)
        if len(hits) >= self.limit:
            return int(hits[0] + self.window - now) + 1
        hits.append(now)
        return None

    def undo(self, key: str) -> None:
        """Forget the most recent hit (used to not count successful requests)."""
        hits = self._hits.get(key)
        if hits:
            hits.pop()

    def cleanup(self, now: Optional[float] = None) -> int:
        """Drop keys with no hits inside the window. Returns how many were dropped."""
        now = time.time() if now is None else now
        stale = [key for key in self._hits if not self._prune(key, now)]
        for key in stale:
            del self._hits[key]
        return len(stale)


@dataclass
class RateLimitPolicy:
    """
    name:            label used in logs
    limit / window:  hits allowed per window (seconds)
    prefixes:        path prefixes the policy applies to; empty means all paths
    excluded:        prefixes exempt even when `prefixes` matches
    skip_successful: do not count requests that end with a status < 400
    message:         body text of the 429 response
    """

    name: str
    limit: int
    window: int
    prefixes: Tuple[str, ...] = ()
    excluded: Tuple[str, ...] = ()
    skip_successful: bool = False
    message: str = "Too many requests, please try again later."
    limiter: SlidingWindowLimiter = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.limiter = SlidingWindowLimiter(self.limit, self.window)

    def applies_to(self, path: str) -> bool:
        if any(path.startswith(prefix) for prefix in self.excluded):
            return False
        return not self.prefixes or any(path.startswith(prefix) for prefix in self.prefixes)


def default_policies() -> List[RateLimitPolicy]:
    return [
        RateLimitPolicy(
            name="general",
            limit=settings.rate_limit_requests,
            window=settings.rate_limit_window,
            message="Too many requests from this IP, please try again later.",
        ),
        RateLimitPolicy(
            name="auth",
            limit=settings.auth_rate_limit_requests,
            window=settings.auth_rate_limit_window,
            prefixes=("/api/auth",),
            skip_successful=True,
            message="Too many authentication attempts, please try again later.",
        ),
        RateLimitPolicy(
            name="api",
            limit=settings.api_rate_limit_requests,
            window=settings.api_rate_limit_window,
            prefixes=("/api/",),
            excluded=("/api/auth",),
            message="Too many API requests, please slow down.",
        ),
    ]


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Applies every matching policy to the request's client IP.

    Excluded paths:
        /health, /metrics and the API docs are never limited.
    """

    EXCLUDED_PATHS = {"/health", "/metrics", "/docs", "/openapi.json", "/redoc"}

    # Inactive IP cleanup every N allowed requests
    CLEANUP_EVERY = 1000

    def __init__(self, app, policies: Optional[List[RateLimitPolicy]] = None):
        super().__init__(app)
        self.policies = policies if policies is not None else default_policies()
        self._allowed_since_cleanup = 0

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path in self.EXCLUDED_PATHS:
            return await call_next(request)

        client_ip = client_ip_of(request)
        applied: List[RateLimitPolicy] = []

        for policy in self.policies:
            if not policy.applies_to(path):
                continue
            retry_after = policy.limiter.hit(client_ip)
            if retry_after is not None:
                # Hits already recorded by earlier policies still count
                logger.warning(
                    "Rate limit '%s' exceeded for IP %s on %s", policy.name, client_ip, path
                )
                error = RateLimitExceededError(retry_after=retry_after, message=policy.message)
                return JSONResponse(
                    status_code=error.status_code,
                    content={
                        "success": False,
                        "error": {"message": error.message, "code": error.code},
                    },
                    headers={"Retry-After": str(retry_after)},
                )
            applied.append(policy)

        response = await call_next(request)

        if response.status_code < 400:
            for policy in applied:
                if policy.skip_successful:
                    policy.limiter.undo(client_ip)

        self._allowed_since_cleanup += 1
        if self._allowed_since_cleanup >= self.CLEANUP_EVERY:
            self._allowed_since_cleanup = 0
            dropped = sum(policy.limiter.cleanup() for policy in self.policies)
            if dropped:
                logger.debug("Cleaned up %d inactive rate limit entries", dropped)

        return response
