"""
backend/golaco/main.py

Purpose:
    FastAPI application bootstrap: middleware and router wiring, exception
    mapping, scheduler lifecycle for the round sweeper, and startup seeding
    of the level ladder.

Dependencies:
    - golaco.database
    - golaco.services.level_service
    - golaco.workers.round_sweeper
"""

import logging
from contextlib import asynccontextmanager

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from bson.errors import InvalidId
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import (
    ConnectionFailure,
    DuplicateKeyError,
    OperationFailure,
    ServerSelectionTimeoutError,
)

import golaco.database as _db
from golaco.config import settings
from golaco.database import close_db, connect_db
from golaco.errors import GameError, NotEligibleYetError
from golaco.middleware.logging import StructuredLoggingMiddleware, setup_logging

logger = logging.getLogger("golaco")
scheduler = AsyncIOScheduler()

_ROUND_SWEEPER_JOB_ID = "round_sweeper"


def _register_jobs() -> None:
    from golaco.workers.round_sweeper import sweep_rounds

    scheduler.add_job(
        sweep_rounds,
        "interval",
        id=_ROUND_SWEEPER_JOB_ID,
        seconds=settings.ROUND_SWEEP_INTERVAL_SECONDS,
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    await connect_db()
    from golaco.services.event_bus import event_bus
    from golaco.services.event_handlers import register_event_handlers
    from golaco.services.level_service import seed_default_levels
    from golaco.services.websocket_manager import websocket_manager

    seed_result = await seed_default_levels()
    logger.info("Default levels seeded on startup: %s", seed_result)

    if settings.WS_EVENTS_ENABLED:
        await websocket_manager.start()
        logger.info("WebSocket realtime manager enabled")
    else:
        logger.info("WebSocket realtime manager disabled via config")
    if settings.EVENT_BUS_ENABLED:
        register_event_handlers(event_bus)
        await event_bus.start()
        logger.info("Event bus enabled")
    else:
        logger.info("Event bus disabled via config")

    _register_jobs()
    scheduler.start()
    logger.info("Background scheduler started (round sweep every %ds)", settings.ROUND_SWEEP_INTERVAL_SECONDS)

    yield

    if scheduler.running:
        scheduler.shutdown(wait=False)
    if settings.EVENT_BUS_ENABLED:
        await event_bus.stop()
    if settings.WS_EVENTS_ENABLED:
        await websocket_manager.stop()
    await close_db()


app = FastAPI(
    title="Golaço",
    description="Digital soccer: timed shots, leagues and two-legged cups",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)

# Structured logging
app.add_middleware(StructuredLoggingMiddleware)

# Routers
from golaco.routers.admin import router as admin_router
from golaco.routers.billing import router as billing_router
from golaco.routers.championships import router as championships_router
from golaco.routers.leaderboard import router as leaderboard_router
from golaco.routers.levels import router as levels_router
from golaco.routers.matches import router as matches_router
from golaco.routers.shots import router as shots_router
from golaco.routers.teams import router as teams_router
from golaco.routers.user import router as user_router
from golaco.routers.ws import router as ws_router

app.include_router(shots_router)
app.include_router(user_router)
app.include_router(championships_router)
app.include_router(matches_router)
app.include_router(leaderboard_router)
app.include_router(teams_router)
app.include_router(levels_router)
app.include_router(admin_router)
app.include_router(billing_router)
app.include_router(ws_router)


def _is_admin_path(request: Request) -> bool:
    return request.url.path.startswith("/api/admin")


@app.exception_handler(GameError)
async def game_error_handler(request: Request, exc: GameError):
    headers = None
    if isinstance(exc, NotEligibleYetError):
        headers = {"Retry-After": str(exc.seconds_remaining)}
    if exc.status_code >= 500:
        logger.error("Game error on %s %s: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload(), headers=headers)


@app.exception_handler(InvalidId)
async def invalid_object_id_handler(request: Request, exc: InvalidId):
    return JSONResponse(status_code=400, content={"detail": "Invalid ID."})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Return clean validation errors without leaking internal field paths."""
    errors = []
    for err in exc.errors():
        loc = err.get("loc", ())
        # Strip the "body" / "query" prefix for cleaner messages
        field = ".".join(str(part) for part in loc[1:]) if len(loc) > 1 else str(loc[-1]) if loc else "unknown"
        errors.append({"field": field, "message": err.get("msg", "Invalid value.")})
    return JSONResponse(status_code=422, content={"detail": "Validation error.", "errors": errors})


@app.exception_handler(DuplicateKeyError)
async def duplicate_key_handler(request: Request, exc: DuplicateKeyError):
    content = {"detail": "Duplicate entry."}
    if _is_admin_path(request):
        content["store_error"] = str(exc)
    return JSONResponse(status_code=409, content=content)


@app.exception_handler(ServerSelectionTimeoutError)
async def db_timeout_handler(request: Request, exc: ServerSelectionTimeoutError):
    logger.error("Database timeout: %s %s", request.method, request.url.path)
    return JSONResponse(status_code=503, content={"detail": "Service temporarily unavailable."})


@app.exception_handler(ConnectionFailure)
async def db_connection_handler(request: Request, exc: ConnectionFailure):
    logger.error("Database connection failure: %s %s", request.method, request.url.path)
    return JSONResponse(status_code=503, content={"detail": "Service temporarily unavailable."})


@app.exception_handler(OperationFailure)
async def db_operation_handler(request: Request, exc: OperationFailure):
    logger.error("Database operation error on %s %s: %s", request.method, request.url.path, exc)
    content = {"detail": "An internal error occurred."}
    if _is_admin_path(request):
        content["store_error"] = str(exc)
    return JSONResponse(status_code=500, content=content)


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    logger.warning("ValueError on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=400, content={"detail": "Invalid input."})


@app.exception_handler(KeyError)
async def key_error_handler(request: Request, exc: KeyError):
    logger.warning("KeyError on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=400, content={"detail": "Missing required field."})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """Catch-all: log the real error, return a safe generic message."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "An internal error occurred."})


@app.get("/health")
async def health():
    """Health check -- verifies the DB connection."""
    try:
        result = await _db.db.command("ping")
        db_ok = result.get("ok") == 1.0
    except Exception:
        db_ok = False

    return {
        "status": "healthy" if db_ok else "degraded",
        "db": "connected" if db_ok else "disconnected",
    }
