"""
api/main.py -- FastAPI application entry point for Gatehouse.

Run with:      uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins

Lifespan builds the process-wide collaborators once (user store, session
token codec, notifier, auth service, reset workflow) and closes the store
on shutdown. The signing secret is read from Settings here and injected into
the codec; nothing else reads it.
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

from api.models import HealthResponse, MessageResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.users import router as users_router
from auth.errors import AuthError
from auth.reset import PasswordResetWorkflow
from auth.service import AuthService
from auth.store import UserStore
from auth.tokens import SessionTokenCodec
from core.config import get_settings
from core.notifier import SmtpNotifier

__version__ = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("gatehouse.api")

_settings = get_settings()

# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build shared collaborators on startup, release them on shutdown.

    Everything before yield runs on startup; everything after yield runs on
    shutdown. The codec and services are immutable after this point, so
    requests share them without locking.
    """
    settings = get_settings()
    logger.info("Gatehouse API starting up")
    app.state.settings = settings
    app.state.user_store = UserStore(settings.database_url)
    codec = SessionTokenCodec(settings.secret_key, settings.token_expire_seconds)
    notifier = SmtpNotifier.from_settings(settings)
    if not settings.smtp_host:
        logger.warning("SMTP_HOST not set -- welcome and password reset emails will fail")
    app.state.auth_service = AuthService(app.state.user_store, codec, notifier, settings.bcrypt_rounds)
    app.state.reset_workflow = PasswordResetWorkflow(
        app.state.user_store,
        codec,
        notifier,
        bcrypt_rounds=settings.bcrypt_rounds,
        reset_token_ttl_seconds=settings.reset_token_expire_seconds,
        app_name=settings.app_name,
    )
    logger.info("Auth initialized (token window %ds)", settings.token_expire_seconds)

    yield

    app.state.user_store.close()
    logger.info("Gatehouse API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Gatehouse API",
    description="Credential, session and password-reset service.",
    version=__version__,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
# ---------------------------------------------------------------------------

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=_settings.allowed_hosts,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    # Path only: reset URLs carry the raw token in the path, so mask it.
    path = request.url.path
    if "/reset-password/" in path:
        path = path.split("/reset-password/")[0] + "/reset-password/***"
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1/users", tags=["Auth"])
app.include_router(users_router, prefix="/api/v1/users", tags=["Users"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# Every failure uses the same {"status", "message"} envelope as successful
# message responses, so clients parse one shape.
# ---------------------------------------------------------------------------


def _fail(status_code: int, message: str, status: str = "fail") -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=MessageResponse(status=status, message=message).model_dump(),
    )


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Turn a domain error into its status code and message."""
    response = _fail(exc.status_code, exc.message)
    if exc.status_code == 401:
        response.headers["WWW-Authenticate"] = "Bearer"
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies (wrong JSON types, oversize fields) are a 400 fail."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = f"Invalid input data: {field} {first.get('msg', '')}".strip() if field else "Invalid input data."
    return _fail(400, message)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return _fail(exc.status_code, str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception goes to the server log only; the client receives a
    generic message.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _fail(500, "Something went very wrong!", status="error")


# ---------------------------------------------------------------------------
# Health endpoint
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
async def health() -> HealthResponse:
    """Return API liveness and current version."""
    return HealthResponse(version=__version__)
