"""
Tests for the per-IP rate limiter.
"""

import pytest
from fastapi import FastAPI, HTTPException
from httpx import AsyncClient, ASGITransport

from opsconsole.main import RateLimitMiddleware


def _app(**limits) -> FastAPI:
    app = FastAPI()
    app.add_middleware(RateLimitMiddleware, window_seconds=60, **limits)

    @app.get("/api/ping")
    async def ping():
        return {"success": True}

    @app.get("/health")
    async def health():
        return {"success": True}

    @app.post("/api/auth/login")
    async def login(payload: dict):
        if payload.get("password") != "right":
            raise HTTPException(status_code=401, detail="Invalid username or password")
        return {"success": True}

    return app


async def _client(app):
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.mark.anyio
async def test_api_bucket_blocks_after_limit():
    async with await _client(_app(max_requests=2, login_max=5)) as c:
        assert (await c.get("/api/ping")).status_code == 200
        assert (await c.get("/api/ping")).status_code == 200
        blocked = await c.get("/api/ping")
        assert blocked.status_code == 429
        assert blocked.json() == {"success": False, "error": "Too many requests, please try again later"}
        assert 0 < int(blocked.headers["Retry-After"]) <= 61

        assert (await c.get("/health")).status_code == 200


@pytest.mark.anyio
async def test_login_bucket_counts_failures_only():
    async with await _client(_app(max_requests=100, login_max=2)) as c:
        for _ in range(3):
            assert (await c.post("/api/auth/login", json={"password": "right"})).status_code == 200
        assert (await c.post("/api/auth/login", json={"password": "wrong"})).status_code == 401
        assert (await c.post("/api/auth/login", json={"password": "wrong"})).status_code == 401
        assert (await c.post("/api/auth/login", json={"password": "right"})).status_code == 429

        assert (await c.get("/api/ping")).status_code == 200


@pytest.mark.anyio
async def test_disabled_limiter_passes_everything():
    async with await _client(_app(max_requests=1, enabled=False)) as c:
        for _ in range(3):
            assert (await c.get("/api/ping")).status_code == 200
