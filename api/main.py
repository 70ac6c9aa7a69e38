"""
api/main.py -- FastAPI application entry point for TenantGuard.

A thin transport adapter over the identity core: routes decode requests into
typed commands, call AuthenticationService / TenantService, and encode the
typed result. No business rule lives in this package.

Run with:  uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. CORSMiddleware     -- adds CORS headers for Settings.cors_origins
  2. SlowAPIMiddleware  -- enforces per-route rate limits from api.limiter

Lifespan builds the object graph once (Database -> stores -> TokenService ->
services) and hangs it on app.state; shutdown disposes the engine.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.tenants import router as tenants_router
from api.routes.v1.users import router as users_router
from auth.errors import AuthFailed, IdentityError
from auth.service import AuthenticationService
from auth.store import UserStore
from auth.tokens import TokenService
from core.config import get_settings
from core.database import Database
from tenants.service import TenantService
from tenants.store import TenantStore

API_VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("tenantguard.api")

# ---------------------------------------------------------------------------
# Lifespan -- modern startup / shutdown pattern (replaces @app.on_event)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the dependency graph on startup and release it on shutdown.

    Startup order matters:
      1. Database first -- every store takes it by reference.
      2. Stores second -- their constructors create the schema.
      3. TokenService and the services last -- they take the stores.
    """
    settings = get_settings()
    logger.info("TenantGuard API starting up")
    db = Database(settings.database_url)
    app.state.db = db
    app.state.tenant_store = TenantStore(db)
    app.state.user_store = UserStore(db)
    app.state.tokens = TokenService.from_settings(settings)
    app.state.auth_service = AuthenticationService.from_settings(
        settings, db, app.state.user_store, app.state.tenant_store, app.state.tokens
    )
    app.state.tenant_service = TenantService(db, app.state.tenant_store)
    logger.info(
        "Identity core initialized (bootstrap_enabled=%s, reset_enabled=%s)",
        bool(settings.bootstrap_secret),
        bool(settings.reset_secret),
    )

    yield

    db.close()
    logger.info("TenantGuard API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="TenantGuard API",
    description="Multi-tenant identity and access: login, tokens, tenants, users.",
    version=API_VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Register in the order you want the request to encounter them: CORS -> SlowAPI.
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter

# ---------------------------------------------------------------------------
# Request logging middleware
#
# Every request passes through this coroutine before reaching any route
# handler. Wall-clock time around call_next gives the latency.
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(users_router, prefix="/api/v1", tags=["Users"])
app.include_router(tenants_router, prefix="/api/v1", tags=["Tenants"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


@app.exception_handler(IdentityError)
async def identity_error_handler(request: Request, exc: IdentityError) -> JSONResponse:
    """Render any core failure with the status code the error class carries."""
    if exc.status_code >= 500:
        logger.error("Core failure on %s %s: %s", request.method, request.url.path, exc.message, exc_info=exc)
    response = JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=ErrorDetail(**exc.to_detail())).model_dump(),
    )
    if isinstance(exc, AuthFailed):
        response.headers["WWW-Authenticate"] = "Bearer"
    return response


@app.exception_handler(RateLimitExceeded)
def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded.

    Plain def, not async: SlowAPIMiddleware calls this handler synchronously
    when the limited route is itself a sync function.
    """
    retry_after = int(getattr(exc, "retry_after", 60))
    response = JSONResponse(
        status_code=429,
        content=ErrorResponse(
            error=ErrorDetail(
                code="rate_limited",
                message="Too many requests.",
                detail=str(exc),
            )
        ).model_dump(),
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies and params answer 400 like every other validation failure."""
    return JSONResponse(
        status_code=400,
        content=ErrorResponse(
            error=ErrorDetail(
                code="validation_error",
                message="Request validation failed.",
                detail="; ".join(
                    f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg', '')}" for err in exc.errors()
                ),
            )
        ).model_dump(),
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Wrap framework-raised HTTP errors (404 on unknown paths, 405) in the envelope."""
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump(),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception is written to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="internal_error",
                message="An unexpected error occurred.",
            )
        ).model_dump(),
    )


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable
# regardless of router registration state. No rate limit applied.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", include_in_schema=True, tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return API liveness, version, and whether the database answers."""
    db: Database = request.app.state.db
    if db.ping():
        return HealthResponse(version=API_VERSION)
    return HealthResponse(status="degraded", version=API_VERSION, database="unavailable")
