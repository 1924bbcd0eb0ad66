"""Roomwatch API: read-only query service over collected room activity."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from roomwatch.logging_config import setup_logging
setup_logging()

from fastapi import Depends, FastAPI
from fastapi import Request as FastAPIRequest
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.exceptions import HTTPException

from config.settings import settings
from roomwatch.db.engine import engine, get_session
from roomwatch.db.tables import Base
from roomwatch.errors import ServiceError, StorageError
from roomwatch.services.profile_views import recorder

VERSION = "1.0.0"

# ── Sentry Error Tracking ────────────────────────
if settings.SENTRY_DSN:
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.logging import LoggingIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.SENTRY_ENVIRONMENT,
        traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
        integrations=[
            FastApiIntegration(),
            SqlalchemyIntegration(),
            LoggingIntegration(level=logging.WARNING, event_level=logging.ERROR),
        ],
        # Viewer IPs and user agents stay out of error reports
        send_default_pii=False,
    )

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Validate config, prepare a local SQLite schema, drain view inserts on shutdown."""
    from roomwatch.startup_checks import validate_settings
    validate_settings()

    if engine.dialect.name == "sqlite":
        # Import all tables so they're registered with Base.metadata
        import roomwatch.db.session_tables  # noqa: F401
        import roomwatch.db.snapshot_tables  # noqa: F401
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("SQLite tables ready")

    yield

    logger.info("Shutting down: draining profile views and connections...")
    await recorder.drain()
    await engine.dispose()
    logger.info("Shutdown complete")


app = FastAPI(
    title="Roomwatch API",
    version=VERSION,
    description="Query API over collected language-exchange room activity",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

# Prometheus metrics
from roomwatch.middleware.metrics import MetricsMiddleware
app.add_middleware(MetricsMiddleware)

# Request ID tracing: outermost, so metrics and handlers log with the id
from roomwatch.middleware.request_id import RequestIDMiddleware
app.add_middleware(RequestIDMiddleware)


# --- Users: search, profiles, history, co-presence, views ---
from roomwatch.api.users import router as users_router
app.include_router(users_router, prefix=settings.API_PREFIX)

# --- Rooms: discovery (before {room_id}), details, timeline, snapshots ---
from roomwatch.api.rooms import router as rooms_router
app.include_router(rooms_router, prefix=settings.API_PREFIX)

from roomwatch.api.leaderboard import router as leaderboard_router
app.include_router(leaderboard_router, prefix=settings.API_PREFIX)

from roomwatch.api.stats import router as stats_router
app.include_router(stats_router, prefix=settings.API_PREFIX)


@app.get("/")
async def root():
    return {"name": "Roomwatch API", "version": VERSION, "docs": "/docs"}


@app.get("/health")
async def health(session: AsyncSession = Depends(get_session)):
    """Deep health check: validates DB connectivity."""
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        await session.execute(text("SELECT 1"))
    except Exception as exc:
        logger.error("Health check failed: %s", exc)
        return JSONResponse(status_code=503, content={
            "status": "unhealthy",
            "database": "disconnected",
            "error": str(exc),
            "timestamp": timestamp,
        })
    return {"status": "healthy", "database": "connected", "timestamp": timestamp}


# --- Structured Error Responses ---


@app.exception_handler(ServiceError)
async def service_error_handler(request: FastAPIRequest, exc: ServiceError):
    if isinstance(exc, StorageError):
        logger.error(
            "%s on %s %s: %s", exc.message, request.method, request.url.path, exc.details,
            exc_info=exc.__cause__ or exc,
        )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: FastAPIRequest, exc: RequestValidationError):
    """Return clean, structured validation errors instead of raw Pydantic output."""
    errors = []
    for err in exc.errors():
        field = " → ".join(str(loc) for loc in err["loc"]) if err.get("loc") else "unknown"
        errors.append({"field": field, "message": err["msg"]})
    return JSONResponse(status_code=422, content={
        "error": "validation_error",
        "message": "Invalid request data",
        "details": errors,
    })


@app.exception_handler(HTTPException)
async def http_error_handler(request: FastAPIRequest, exc: HTTPException):
    """Consistent error envelope for all HTTP errors."""
    return JSONResponse(status_code=exc.status_code, content={
        "error": exc.detail if isinstance(exc.detail, str) else "error",
        "message": exc.detail,
    })


@app.exception_handler(Exception)
async def unhandled_error_handler(request: FastAPIRequest, exc: Exception):
    """Catch-all for unhandled exceptions: never leak stack traces."""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={
        "error": "internal_error",
        "details": str(exc),
    })
