"""
api/main.py -- FastAPI application entry point for Threadline auth.

Run with:  uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  1. CORSMiddleware -- lets the frontend origin send the session cookie
                       (allow_credentials=True requires an explicit origin).
  2. log_requests   -- one log line per request with latency.

Lifespan builds every collaborator once (user store, key-value store,
notifier, AuthService), publishes them on app.state, and tears them down
symmetrically on shutdown.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from auth.notifier import build_notifier
from auth.service import AuthService
from auth.store import UserStore
from cache.store import SQLiteKeyValueStore, build_kv_store
from core.config import get_settings

VERSION = "0.1.0"

_settings = get_settings()

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=_settings.log_level.upper(),
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("threadline.api")

# ---------------------------------------------------------------------------
# Background purge task
# ---------------------------------------------------------------------------


async def _purge_loop(app: FastAPI) -> None:
    """Purge expired SQLite key-value rows every hour.

    Redis expires keys on its own; only the SQLite fallback needs this.
    CancelledError from task.cancel() during shutdown propagates out of
    asyncio.sleep and unwinds the coroutine.
    """
    while True:
        await asyncio.sleep(60 * 60)
        removed = await asyncio.to_thread(app.state.kv_store.purge_expired)
        if removed:
            logger.info("Purged %d expired key-value entries", removed)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the server lifetime.

    Everything before yield runs on startup; everything after yield runs on
    shutdown. Pending reset emails are drained before the stores close.
    """
    logger.info("Threadline auth starting up")
    app.state.settings = _settings
    app.state.user_store = UserStore(_settings.database_url)
    app.state.kv_store = build_kv_store(_settings.redis_url, _settings.kv_db_path)
    notifier = build_notifier(_settings)
    app.state.auth_service = AuthService(
        users=app.state.user_store,
        tokens=app.state.kv_store,
        notifier=notifier,
        settings=_settings,
    )
    logger.info("Auth initialized (notifier=%s)", type(notifier).__name__)
    purge_task = None
    if isinstance(app.state.kv_store, SQLiteKeyValueStore):
        purge_task = asyncio.create_task(_purge_loop(app))

    yield

    if purge_task is not None:
        purge_task.cancel()
    await app.state.auth_service.drain()
    await app.state.kv_store.close()
    app.state.user_store.close()
    logger.info("Threadline auth shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Threadline Auth",
    description="Registration, session login and password recovery.",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[_settings.frontend_url],
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type"],
    max_age=3600,
)


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


# ---------------------------------------------------------------------------
# Exception handlers
#
# Every failure that is not a field error leaves through _error_response, so
# clients see one envelope: {"error": {"code", "message", "detail"}}.
# ---------------------------------------------------------------------------


def _error_response(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    envelope = ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail))
    return JSONResponse(status_code=status_code, content=envelope.model_dump())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed body or wrong JSON types. Policy failures never get here.

    The rejected input is dropped from each error: it may be a password.
    """
    errors = [{k: v for k, v in err.items() if k != "input"} for err in exc.errors()]
    return _error_response(422, "validation_error", "Request body is malformed.", str(errors))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return _error_response(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Store outages and bugs. Details go to the log, never to the client."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_response(500, "internal_error", "The server could not complete the request.")


# ---------------------------------------------------------------------------
# Health endpoint
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
async def health(request: Request) -> HealthResponse:
    """Return liveness plus a reachability check of both stores."""
    db_ok = await asyncio.to_thread(request.app.state.user_store.ping)
    kv_ok = await request.app.state.kv_store.ping()
    return HealthResponse(
        version=VERSION,
        components={
            "app": "ok",
            "database": "ok" if db_ok else "error",
            "token_store": "ok" if kv_ok else "error",
        },
    )
