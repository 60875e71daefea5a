"""
api/main.py -- FastAPI application factory for NexusAuth.

Install:   pip install -e .
Run with:  python main.py
           uvicorn asgi:app --reload

create_app(settings) builds the whole service from an explicit Settings
value. Nothing below this point reads the environment: the store, token
service, authenticator and profile service are constructed from the settings
in the lifespan and parked on app.state, where route handlers and the
get_caller_id dependency pick them up.

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for the browser client's origin
  3. log_requests          -- one access-log line per routed request

Lifespan handles startup (store, services) and shutdown (dispose engine).
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.models import ErrorResponse, HealthResponse
from api.routes.auth import router as auth_router
from api.routes.user import router as user_router
from auth.errors import (
    AccountNotFound,
    DuplicateEmail,
    Forbidden,
    InvalidCredentials,
    InvalidOrExpiredToken,
    MalformedToken,
    MissingToken,
    NexusAuthError,
    NotFound,
    StoreError,
    StorePermissionDenied,
    StoreUnavailable,
    ValidationError,
)
from auth.service import Authenticator, ProfileService
from auth.store import UserStore
from auth.tokens import TokenService
from core.config import Settings

logger = logging.getLogger("nexusauth.api")

VERSION = "1.0.0"

# Status for each domain error. Looked up along the exception's MRO, so
# subclasses (EmailAlreadyRegistered, TokenExpired) inherit their parent's.
_STATUS_BY_ERROR: dict[type[NexusAuthError], int] = {
    ValidationError: 400,
    DuplicateEmail: 400,
    AccountNotFound: 400,
    InvalidCredentials: 400,
    MissingToken: 401,
    MalformedToken: 401,
    InvalidOrExpiredToken: 401,
    Forbidden: 403,
    StorePermissionDenied: 403,
    NotFound: 404,
    StoreUnavailable: 503,
}


def status_for(exc: NexusAuthError) -> int:
    for cls in type(exc).__mro__:
        if cls in _STATUS_BY_ERROR:
            return _STATUS_BY_ERROR[cls]
    return 500


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


# ---------------------------------------------------------------------------
# Lifespan -- startup / shutdown
# ---------------------------------------------------------------------------


def _build_lifespan(settings: Settings):
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Construct shared services on startup; dispose the engine on shutdown.

        The store does not raise when the database is down at startup. It logs
        a diagnostic and the service comes up with db="disconnected", so the
        health endpoint and 503 responses tell the operator what is wrong.
        """
        logger.info("NexusAuth API starting up")
        app.state.started_at = time.monotonic()
        user_store = UserStore(settings.database_url, timeout=settings.db_timeout_seconds)
        tokens = TokenService(
            secret_key=settings.secret_key,
            expire_seconds=settings.token_expire_seconds,
        )
        app.state.user_store = user_store
        app.state.tokens = tokens
        app.state.authenticator = Authenticator(
            user_store,
            tokens,
            bcrypt_rounds=settings.bcrypt_rounds,
            unify_login_errors=settings.unify_login_errors,
        )
        app.state.profiles = ProfileService(user_store)
        logger.info(
            "Auth initialized (token_expire_seconds=%d, bcrypt_rounds=%d, unify_login_errors=%s)",
            settings.token_expire_seconds,
            settings.bcrypt_rounds,
            settings.unify_login_errors,
        )

        yield

        user_store.close()
        logger.info("NexusAuth API shutdown complete")

    return lifespan


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


def create_app(settings: Settings) -> FastAPI:
    """Build the FastAPI application for the given settings."""
    configure_logging(settings.log_level)

    app = FastAPI(
        title="NexusAuth API",
        description="Email/password registration, login and profile management.",
        version=VERSION,
        lifespan=_build_lifespan(settings),
        debug=settings.debug,
    )
    app.state.settings = settings

    # Each registration wraps the stack built so far, so the last middleware
    # added is the first to see a request: register innermost first.
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

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_methods=["GET", "POST", "PUT"],
        allow_headers=["Content-Type", "Authorization"],
        max_age=3600,
    )
    app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.allowed_hosts)

    app.include_router(auth_router, prefix="/api", tags=["Auth"])
    app.include_router(user_router, prefix="/api", tags=["User"])

    _register_exception_handlers(app)

    @app.get("/api/health", tags=["Health"])
    def health(request: Request) -> HealthResponse:
        """Liveness, database link state and process uptime. No auth."""
        started_at = getattr(request.app.state, "started_at", time.monotonic())
        return HealthResponse(
            db=request.app.state.user_store.state(),
            uptime=f"{int(time.monotonic() - started_at)}s",
        )

    return app


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so the client can show
# `message` (and `error` when present) without inspecting status codes.
# ---------------------------------------------------------------------------


def _error_response(status_code: int, code: str, message: str, error: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(message=message, code=code, error=error).model_dump(exclude_none=True),
    )


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(NexusAuthError)
    async def auth_error_handler(request: Request, exc: NexusAuthError) -> JSONResponse:
        """Render a domain error with its mapped status and stable code."""
        status_code = status_for(exc)
        if isinstance(exc, StoreError):
            logger.error("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.detail or exc.message)
        else:
            logger.info("%s on %s %s", exc.code, request.method, request.url.path)
        return _error_response(status_code, exc.code, exc.message, exc.detail)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """Return 400 when the request body or path params fail schema validation."""
        return _error_response(400, ValidationError.code, "Request validation failed.", str(exc.errors()))

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        """Structured body for framework-raised HTTP errors (404 route, 405 method)."""
        return _error_response(exc.status_code, f"http_{exc.status_code}", str(exc.detail))

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all for unexpected server errors.

        The traceback goes to the log only; the client gets a generic message.
        """
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return _error_response(500, "internal_error", "An unexpected error occurred.")
