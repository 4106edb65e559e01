"""
api/main.py -- FastAPI application entry point for EstateDesk.

Run with:      uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan handles startup (stores, mailer, media backend, admin seed) and
shutdown (dispose engines, close HTTP session) symmetrically.

Error policy:
  Every failure leaves the process as the same envelope:
      {"success": false, "error": {"code": ..., "message": ..., "detail": ...}}
  Domain errors (core.errors.AppError) carry their own status and code.
  Unexpected exceptions are logged with a traceback and reported generically.
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
from fastapi.staticfiles import StaticFiles
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.admin import router as admin_router
from api.routes.v1.auth import router as auth_router
from api.routes.v1.contact import router as contact_router
from api.routes.v1.profile import router as profile_router
from api.routes.v1.properties import router as properties_router
from auth.seed import ensure_admin_account
from auth.store import AccountStore
from core.config import get_settings
from core.errors import AppError
from listings.store import ListingStore
from media.storage import build_media_store
from notify.mailer import Mailer

API_VERSION = "1.0.0"

settings = get_settings()

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("estatedesk.api")


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open stores, seed the admin, build the delivery backends; close them on exit.

    The admin seed runs after the account store exists (create_all has run).
    """
    logger.info("EstateDesk API starting up")
    app.state.account_store = AccountStore()
    app.state.listing_store = ListingStore()
    logger.info("Stores initialized")

    admin = ensure_admin_account(app.state.account_store, settings)
    if admin is not None:
        logger.info("Admin account ready (id=%s)", admin.id)

    app.state.mailer = Mailer(settings)
    app.state.media_store = build_media_store(settings)
    logger.info(
        "Delivery initialized (email=%s, media=%s)",
        app.state.mailer.backend,
        app.state.media_store.name,
    )

    yield

    app.state.mailer.close()
    app.state.listing_store.close()
    app.state.account_store.close()
    logger.info("EstateDesk API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="EstateDesk API",
    description="Real-estate listings with accounts, OTP email verification, media and site-visit scheduling.",
    version=API_VERSION,
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

app.add_middleware(SlowAPIMiddleware)

# SlowAPIMiddleware reads the limiter from app.state.
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
app.include_router(profile_router, prefix="/api/v1", tags=["Profile"])
app.include_router(properties_router, prefix="/api/v1", tags=["Properties"])
app.include_router(contact_router, prefix="/api/v1", tags=["Contact"])
app.include_router(admin_router, prefix="/api/v1", tags=["Admin"])

# Locally stored media is served by the API itself. Cloudinary URLs are absolute.
if settings.media_backend == "local":
    app.mount(settings.media_base_url, StaticFiles(directory=settings.media_root, check_dir=False), name="media")


# ---------------------------------------------------------------------------
# Exception handlers
#
# One envelope for every failure: {"success": false, "error": {...}}.
# ---------------------------------------------------------------------------


def _envelope(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump(),
    )


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Translate a domain error into its fixed status code and error code."""
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.detail or exc.message)
    return _envelope(exc.status_code, exc.code, exc.message, exc.detail)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """429 rate_limited, with Retry-After in seconds."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _envelope(429, "rate_limited", "Too many requests.", str(exc))
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 validation_failed when the body, path or query fails validation.

    The first error's location and message become the human-readable message;
    the full error list goes in detail.
    """
    errors = exc.errors()
    message = "Request validation failed."
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path"))
        text = str(first.get("msg", "")).removeprefix("Value error, ")
        message = f"{field}: {text}" if field else text
    return _envelope(400, "validation_failed", message, str(errors))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for FastAPI/Starlette HTTP exceptions (404 routes, 405...)."""
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"success": False, "error": exc.detail})
    return _envelope(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """500 internal_error. The exception text goes to the log, never to the client."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _envelope(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Unauthenticated and not rate-limited. Each store is pinged; a failing store
# marks the response "degraded" rather than failing the request.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", include_in_schema=True, tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return API liveness, version and per-component status."""
    components: dict[str, str] = {}
    for name in ("account_store", "listing_store"):
        store = getattr(request.app.state, name, None)
        if store is None:
            components[name] = "unavailable"
            continue
        try:
            store.ping()
            components[name] = "ok"
        except SQLAlchemyError as exc:
            logger.warning("Health check failed for %s: %s", name, exc)
            components[name] = "error"
    status = "ok" if all(v == "ok" for v in components.values()) else "degraded"
    return HealthResponse(status=status, version=API_VERSION, components=components)
