"""
api/main.py -- FastAPI application entry point for the RBAC auth service.

Run with:      uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIASGIMiddleware -- enforces per-route rate limits from api.limiter

Lifespan wires the service graph onto app.state at startup:
  store          CredentialStore (SQLAlchemy Core)
  token_service  TokenService(TokenConfig) -- immutable signing config
  auth_service   AuthService -- the AuthServiceInterface the gate depends on
  accounts       AccountService -- hash-before-persist user writes
and seeds default roles/permissions when SEED_DEFAULTS is on. Shutdown closes
the store.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIASGIMiddleware

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.permissions import router as permissions_router
from api.routes.v1.roles import router as roles_router
from api.routes.v1.users import router as users_router
from auth.accounts import AccountService
from auth.errors import AuthError, DuplicateError, InvalidCredentials, InvalidToken, NotFound, StorageFault
from auth.seed import seed_defaults
from auth.service import AuthService
from auth.store import CredentialStore
from core.config import get_settings

__version__ = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("rbacauth.api")

settings = get_settings()


# ---------------------------------------------------------------------------
# Lifespan -- modern startup / shutdown pattern (replaces @app.on_event)
# ---------------------------------------------------------------------------


def wire_services(app: FastAPI, store: CredentialStore) -> None:
    """Attach the service graph for `store` to app.state."""
    auth_service = AuthService.from_settings(store, settings)
    app.state.store = store
    app.state.token_service = auth_service.tokens
    app.state.auth_service = auth_service
    app.state.accounts = AccountService(store, auth_service.hasher)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the store and services on startup; close the store on shutdown."""
    logger.info("RBAC auth API starting up")
    wire_services(app, CredentialStore(settings.database_url))
    if settings.seed_defaults:
        seed_defaults(
            app.state.store,
            app.state.accounts,
            admin_username=settings.admin_username,
            admin_email=settings.admin_email,
            admin_password=settings.admin_password,
        )
    logger.info("Auth initialized (issuer=%s, token_ttl=%ss)", settings.token_issuer, settings.token_expire_seconds)

    yield

    app.state.store.close()
    logger.info("RBAC auth API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="RBAC Auth API",
    description="Username/password login, signed session tokens and role-based permission checks.",
    version=__version__,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Register in the order you want the request to encounter them:
# TrustedHost -> CORS -> SlowAPI.
# ---------------------------------------------------------------------------

app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.allowed_hosts)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

# The ASGI variant awaits async exception handlers, so a 429 goes through
# rate_limit_handler below instead of slowapi's bare default response.
app.add_middleware(SlowAPIASGIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


# ---------------------------------------------------------------------------
# Request logging middleware
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
app.include_router(roles_router, prefix="/api/v1", tags=["Roles"])
app.include_router(permissions_router, prefix="/api/v1", tags=["Permissions"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# Only the error's public message is ever sent; internals go to the log.
# ---------------------------------------------------------------------------


def _error(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump(),
    )


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded."""
    retry_after = exc.limit.limit.get_expiry() if exc.limit is not None else 60
    response = _error(429, "rate_limited", "Too many requests.", str(exc.detail))
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or path params fail validation."""
    return _error(422, "validation_error", "Request validation failed.", str(exc.errors()))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI HTTP exceptions.

    Route handlers and dependencies raise HTTPException with a dict detail.
    Use it directly as the error field rather than stringifying it.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)
    response = _error(exc.status_code, f"http_{exc.status_code}", str(exc.detail))
    for key, value in (exc.headers or {}).items():
        response.headers[key] = value
    return response


@app.exception_handler(NotFound)
async def not_found_handler(request: Request, exc: NotFound) -> JSONResponse:
    return _error(404, "not_found", exc.message)


@app.exception_handler(DuplicateError)
async def duplicate_handler(request: Request, exc: DuplicateError) -> JSONResponse:
    return _error(409, "conflict", exc.message)


@app.exception_handler(StorageFault)
async def storage_fault_handler(request: Request, exc: StorageFault) -> JSONResponse:
    """503 + Retry-After: the store is down, the request itself may be fine."""
    response = _error(503, "storage_unavailable", exc.message)
    response.headers["Retry-After"] = "5"
    return response


@app.exception_handler(InvalidCredentials)
@app.exception_handler(InvalidToken)
async def unauthorized_handler(request: Request, exc: AuthError) -> JSONResponse:
    return _error(401, "unauthorized", exc.message)


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    logger.error("Unmapped auth error on %s %s: %s", request.method, request.url.path, exc.__class__.__name__)
    return _error(500, "internal_error", "An unexpected error occurred.")


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception is written to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# No rate limit and no auth -- load balancers must be able to poll it.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", include_in_schema=True, tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return liveness, version and a database ping."""
    store: CredentialStore | None = getattr(request.app.state, "store", None)
    database = "ok" if store is not None and store.ping() else "error"
    return HealthResponse(
        status="healthy" if database == "ok" else "degraded",
        version=__version__,
        components={"app": "ok", "database": database},
    )
