"""
Ops Console — FastAPI Backend
REST API for the lending operations console: users, posts/tags, partner
API configs, news content, FCM push campaigns and attribution/funnel reports.
All console data persisted to PostgreSQL; reports read the lending-core tables.
"""

import time
import asyncio
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.exceptions import HTTPException as StarletteHTTPException
from fastapi import FastAPI
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from opsconsole.config import get_settings
from opsconsole.database import init_db, check_db_connection
from opsconsole.routers import (
    auth, users, tags, posts, api_partners, content,
    push_configs, push_audiences, push_templates, push_tasks,
    attribution, internal_transfer, rating,
)
from opsconsole.utils import utcnow

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

settings = get_settings()

SERVICE_NAME = "Ops Console API"
LOGIN_PATH = "/api/auth/login"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting {SERVICE_NAME} ({settings.environment})...")
    try:
        await init_db()
        logger.info("Database initialized, all tables ready.")
    except Exception as e:
        logger.error(f"Startup failed (DB/init): {e}", exc_info=True)
        # Still yield so /api/health can report degraded
    yield
    logger.info("Shutting down...")


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    In-memory sliding window per client IP.
    /api/* shares one bucket; the login route has its own bucket that only
    counts failed attempts (responses >= 400).
    """

    def __init__(
        self,
        app,
        max_requests: int = 100,
        window_seconds: int = 15 * 60,
        login_max: int = 20,
        enabled: bool = True,
    ):
        super().__init__(app)
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.login_max = login_max
        self.enabled = enabled
        self.requests: dict[str, list[float]] = defaultdict(list)
        self._lock = asyncio.Lock()

    def _prune(self, key: str, now: float) -> list[float]:
        hits = [t for t in self.requests[key] if now - t < self.window_seconds]
        if hits:
            self.requests[key] = hits
        else:
            self.requests.pop(key, None)
        return hits

    def _too_many(self, hits: list[float], now: float) -> JSONResponse:
        retry_after = int(self.window_seconds - (now - hits[0])) + 1
        return JSONResponse(
            status_code=429,
            content={"success": False, "error": "Too many requests, please try again later"},
            headers={"Retry-After": str(retry_after)},
        )

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if not self.enabled or not path.startswith("/api/") or request.method == "OPTIONS":
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        is_login = path.startswith(LOGIN_PATH)
        key = f"{client_ip}:{'login' if is_login else 'api'}"
        limit = self.login_max if is_login else self.max_requests

        async with self._lock:
            now = time.time()
            hits = self._prune(key, now)
            if len(hits) >= limit:
                logger.warning(f"Rate limit hit for {key}")
                return self._too_many(hits, now)
            if not is_login:
                self.requests[key].append(now)

        response = await call_next(request)

        if is_login and response.status_code >= 400:
            async with self._lock:
                self.requests[key].append(time.time())
        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start = time.time()
        response = await call_next(request)
        logger.info(
            f"{request.method} {request.url.path} -> {response.status_code} ({time.time() - start:.3f}s)"
        )
        return response


app = FastAPI(
    title=SERVICE_NAME,
    description="Operations console for users, content, partner APIs, push campaigns and attribution reports",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    RateLimitMiddleware,
    max_requests=settings.rate_limit_max_requests,
    window_seconds=settings.rate_limit_window_seconds,
    login_max=settings.login_rate_limit_max,
    enabled=settings.rate_limit_enabled,
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Error envelope ────────────────────────────────────────────────────

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    detail = exc.detail
    if exc.status_code == 404 and detail == "Not Found":
        detail = "Endpoint not found"
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "error": "Request validation failed",
            "details": jsonable_encoder(exc.errors()),
        },
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception on {request.method} {request.url.path}: {exc}", exc_info=True)
    message = "Internal server error" if settings.is_production else (str(exc) or "Internal server error")
    return JSONResponse(status_code=500, content={"success": False, "error": message})


# ── Routers ───────────────────────────────────────────────────────────

for module in (auth, users, tags, posts, api_partners, content,
               push_configs, push_templates, push_tasks,
               attribution, internal_transfer, rating):
    app.include_router(module.router, prefix="/api")
app.include_router(push_audiences.router, prefix="/api")
app.include_router(push_audiences.token_router, prefix="/api")


@app.get("/health")
@app.get("/api/health")
async def health_check():
    db_ok = await check_db_connection()
    return {
        "success": True,
        "status": "healthy" if db_ok else "degraded",
        "service": SERVICE_NAME,
        "database": "connected" if db_ok else "disconnected",
        "timestamp": utcnow().isoformat(),
    }
