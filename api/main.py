"""
api/main.py -- FastAPI application entry point for VidTube Auth.

Install deps:  pip install -e .
Run with:      uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  1. CORSMiddleware   -- CORS headers for configured browser origins, with
                         credentials so the session cookies travel
  2. log_requests     -- one access-log line per request

Lifespan builds the user store, asset store, and session manager on startup
and closes them on shutdown.
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
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.users import router as users_router
from auth.sessions import SessionManager
from auth.store import UserStore
from core.config import get_settings
from core.errors import ServiceError
from media.storage import CloudinaryAssetStore

__version__ = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("vidtube.api")


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the user store and asset store, then wire them into one SessionManager.

    Routes reach all three through app.state. Both stores are closed on
    shutdown.
    """
    logger.info("VidTube Auth API starting up")
    user_store = UserStore()
    asset_store = CloudinaryAssetStore()
    app.state.user_store = user_store
    app.state.asset_store = asset_store
    app.state.sessions = SessionManager(user_store, asset_store)

    yield

    asset_store.close()
    user_store.close()
    logger.info("VidTube Auth API stopped")


app = FastAPI(
    title="VidTube Auth API",
    description="Account registration, login, and refresh-token session management.",
    version=__version__,
    lifespan=lifespan,
)

# Cookies only travel cross-origin with allow_credentials and explicit origins.
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH"],
    allow_headers=["Content-Type", "Authorization"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """One access-log line per request. Never logs bodies, cookies, or headers."""
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    client = request.client.host if request.client else "-"
    logger.info("%s %s -> %d (%.1f ms) from %s", request.method, request.url.path, response.status_code, elapsed_ms, client)
    return response


app.include_router(users_router, prefix="/api/v1", tags=["Users"])


# ---------------------------------------------------------------------------
# Error envelope
#
# Every failure leaves the API as {"error": {"code", "message", "detail"}}.
# ---------------------------------------------------------------------------


def _error_response(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail))
    return JSONResponse(status_code=status_code, content=body.model_dump())


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    """Render a session-layer failure with its own status and code.

    5xx failures are logged with the traceback; 4xx are client mistakes and
    only logged at info level.
    """
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message, exc_info=exc)
    else:
        logger.info("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
    return _error_response(exc.status_code, exc.code, exc.message, exc.detail)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Body or query failed pydantic validation (wrong types, over-long fields)."""
    return _error_response(422, "validation_error", "Request validation failed.", str(exc.errors()))


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Unknown routes, wrong methods, and any HTTPException raised by FastAPI."""
    return _error_response(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last resort. The exception text goes to the log only, never to the client."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_response(500, "internal_error", "Something went wrong.")


# ---------------------------------------------------------------------------
# Health endpoint
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Report liveness, version, and whether the user store answers."""
    try:
        db_status = "ok" if request.app.state.user_store.ping() else "error"
    except Exception:
        logger.exception("Health check database ping failed")
        db_status = "error"
    return HealthResponse(
        status="healthy" if db_status == "ok" else "degraded",
        version=__version__,
        components={"app": "ok", "database": db_status},
    )
