"""
StudyCare Backend — Rate Limiting Tests
=========================================

SlidingWindowLimiter in isolation, then RateLimitMiddleware on a bare
FastAPI app with small policies.
"""

import pytest
from fastapi import FastAPI
from fastapi.responses import JSONResponse
from httpx import ASGITransport, AsyncClient

from studycare.middleware.rate_limit import RateLimitMiddleware, RateLimitPolicy, SlidingWindowLimiter


class TestSlidingWindowLimiter:

    def test_allows_up_to_limit(self):
        limiter = SlidingWindowLimiter(limit=2, window=60)
        assert limiter.hit("1.1.1.1", now=0) is None
        assert limiter.hit("1.1.1.1", now=1) is None
        assert limiter.hit("1.1.1.1", now=2) == 59

    def test_keys_are_independent(self):
        limiter = SlidingWindowLimiter(limit=1, window=60)
        assert limiter.hit("a", now=0) is None
        assert limiter.hit("b", now=0) is None

    def test_window_slides(self):
        limiter = SlidingWindowLimiter(limit=1, window=10)
        limiter.hit("ip", now=0)
        assert limiter.hit("ip", now=5) is not None
        assert limiter.hit("ip", now=10) is None

    def test_rejected_hits_are_not_recorded(self):
        limiter = SlidingWindowLimiter(limit=1, window=10)
        limiter.hit("ip", now=0)
        for t in range(1, 9):
            limiter.hit("ip", now=t)
        assert limiter.hit("ip", now=10) is None

    def test_undo_forgets_last_hit(self):
        limiter = SlidingWindowLimiter(limit=1, window=60)
        limiter.hit("ip", now=0)
        limiter.undo("ip")
        assert limiter.hit("ip", now=1) is None

    def test_cleanup_drops_idle_keys(self):
        limiter = SlidingWindowLimiter(limit=5, window=10)
        limiter.hit("old", now=0)
        limiter.hit("new", now=15)
        assert limiter.cleanup(now=16) == 1


class TestRateLimitPolicy:

    def test_prefix_and_exclusion(self):
        policy = RateLimitPolicy(name="api", limit=1, window=60, prefixes=("/api/",), excluded=("/api/auth",))
        assert policy.applies_to("/api/notes")
        assert not policy.applies_to("/api/auth/login")
        assert not policy.applies_to("/health")

    def test_empty_prefixes_match_everything(self):
        assert RateLimitPolicy(name="general", limit=1, window=60).applies_to("/anything")


def _app(policies):
    app = FastAPI()
    app.add_middleware(RateLimitMiddleware, policies=policies)

    @app.get("/api/notes")
    async def notes():
        return {"ok": True}

    @app.post("/api/auth/login")
    async def login(ok: bool = True):
        if ok:
            return {"ok": True}
        return JSONResponse(status_code=401, content={"ok": False})

    @app.get("/health")
    async def health():
        return {"status": "healthy"}

    return app


class TestRateLimitMiddleware:

    @pytest.mark.asyncio
    async def test_exceeding_returns_429_envelope(self):
        app = _app([RateLimitPolicy(name="api", limit=2, window=60, prefixes=("/api/",), message="Slow down")])
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            assert (await client.get("/api/notes")).status_code == 200
            assert (await client.get("/api/notes")).status_code == 200
            response = await client.get("/api/notes")

        assert response.status_code == 429
        assert int(response.headers["Retry-After"]) > 0
        assert response.json() == {
            "success": False,
            "error": {"message": "Slow down", "code": "rate_limit_exceeded"},
        }

    @pytest.mark.asyncio
    async def test_health_is_never_limited(self):
        app = _app([RateLimitPolicy(name="general", limit=1, window=60)])
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            for _ in range(5):
                assert (await client.get("/health")).status_code == 200

    @pytest.mark.asyncio
    async def test_successful_auth_attempts_not_counted(self):
        policy = RateLimitPolicy(name="auth", limit=2, window=60, prefixes=("/api/auth",), skip_successful=True)
        app = _app([policy])
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            for _ in range(5):
                assert (await client.post("/api/auth/login")).status_code == 200
            assert (await client.post("/api/auth/login", params={"ok": False})).status_code == 401
            assert (await client.post("/api/auth/login", params={"ok": False})).status_code == 401
            assert (await client.post("/api/auth/login", params={"ok": False})).status_code == 429

    @pytest.mark.asyncio
    async def test_client_ip_from_forwarded_header(self):
        app = _app([RateLimitPolicy(name="api", limit=1, window=60, prefixes=("/api/",))])
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            first = await client.get("/api/notes", headers={"X-Forwarded-For": "10.0.0.1"})
            other_ip = await client.get("/api/notes", headers={"X-Forwarded-For": "10.0.0.2"})
            repeat = await client.get("/api/notes", headers={"X-Forwarded-For": "10.0.0.1"})

        assert first.status_code == 200
        assert other_ip.status_code == 200
        assert repeat.status_code == 429
