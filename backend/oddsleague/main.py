"""
backend/oddsleague/main.py

Purpose:
    FastAPI application bootstrap: middleware and router wiring, error
    mapping for the domain exceptions, and the scheduler lifecycle for the
    odds and result jobs.

Dependencies:
    - oddsleague.database
    - oddsleague.workers.odds_poller
    - oddsleague.workers.result_settler
"""

import logging
from contextlib import asynccontextmanager

from apscheduler.schedulers.asyncio import AsyncIOScheduler
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

from oddsleague.config import ConfigurationError, settings
import oddsleague.database as _db
from oddsleague.database import close_db, connect_db
from oddsleague.middleware.logging import StructuredLoggingMiddleware, setup_logging
from oddsleague.providers.base import ProviderError
from oddsleague.services.rate_limiter import SlidingWindowRateLimiter
from oddsleague.services.settlement_service import FixtureNotFoundError, SettlementInvariantError

logger = logging.getLogger("oddsleague")
scheduler = AsyncIOScheduler()


def _build_automated_job_specs() -> list[dict]:
    from oddsleague.workers.odds_poller import poll_odds
    from oddsleague.workers.result_settler import sync_and_settle

    return [
        {"id": "odds_poller", "func": poll_odds, "trigger": "interval",
         "trigger_kwargs": {"minutes": settings.ODDS_JOB_INTERVAL_MINUTES}},
        {"id": "result_settler", "func": sync_and_settle, "trigger": "interval",
         "trigger_kwargs": {"minutes": settings.RESULTS_JOB_INTERVAL_MINUTES}},
    ]


def _register_automated_jobs() -> int:
    added = 0
    for spec in _build_automated_job_specs():
        if scheduler.get_job(spec["id"]):
            continue
        scheduler.add_job(
            spec["func"],
            spec["trigger"],
            id=spec["id"],
            replace_existing=True,
            # Never two overlapping runs of one job in this process.
            max_instances=1,
            coalesce=True,
            **spec["trigger_kwargs"],
        )
        added += 1
    return added


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(settings.LOG_LEVEL)
    await connect_db()

    app.state.leaderboard_rate_limiter = SlidingWindowRateLimiter(
        settings.LEADERBOARD_RATE_LIMIT, settings.LEADERBOARD_RATE_WINDOW_SECONDS,
    )

    if settings.AUTOMATION_ENABLED:
        added = _register_automated_jobs()
        scheduler.start()
        logger.info("Background scheduler started with %d jobs", added)
    else:
        logger.info("Automated jobs disabled via config; use the cron or admin endpoints.")

    yield

    if scheduler.running:
        scheduler.shutdown(wait=False)
    await close_db()


app = FastAPI(
    title="OddsLeague",
    description="Score-prediction league scored against locked market odds",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)

# Structured logging
app.add_middleware(StructuredLoggingMiddleware)

# Routers
from oddsleague.routers.admin import router as admin_router
from oddsleague.routers.cron import router as cron_router
from oddsleague.routers.leaderboard import router as leaderboard_router
from oddsleague.routers.predictions import router as predictions_router

app.include_router(admin_router)
app.include_router(cron_router)
app.include_router(leaderboard_router)
app.include_router(predictions_router)


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    logger.error("Configuration error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": "Server is not configured for this operation."})


@app.exception_handler(ProviderError)
async def provider_error_handler(request: Request, exc: ProviderError):
    logger.error("Provider failure on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=502, content={"detail": f"Upstream provider {exc.provider} failed."})


@app.exception_handler(SettlementInvariantError)
async def settlement_invariant_handler(request: Request, exc: SettlementInvariantError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(FixtureNotFoundError)
async def fixture_not_found_handler(request: Request, exc: FixtureNotFoundError):
    return JSONResponse(status_code=404, content={"detail": "Fixture not found."})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Return clean validation errors without leaking internal field paths."""
    errors = []
    for err in exc.errors():
        loc = err.get("loc", ())
        # Strip the "body" / "query" prefix for cleaner messages
        field = ".".join(str(l) for l in loc[1:]) if len(loc) > 1 else str(loc[-1]) if loc else "unknown"
        errors.append({"field": field, "message": err.get("msg", "Invalid value.")})
    return JSONResponse(status_code=422, content={"detail": "Validation error.", "errors": errors})


@app.exception_handler(DuplicateKeyError)
async def duplicate_key_handler(request: Request, exc: DuplicateKeyError):
    return JSONResponse(status_code=409, content={"detail": "Duplicate entry."})


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
    return JSONResponse(status_code=500, content={"detail": "An internal error occurred."})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """Catch-all: log the real error, return a safe generic message."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "An internal error occurred."})


@app.get("/health")
async def health():
    """Health check: DB ping, odds provider circuit and scheduler state."""
    from oddsleague.providers.odds_api import odds_provider
    from oddsleague.workers._state import get_synced_at

    try:
        result = await _db.db.command("ping")
        db_ok = result.get("ok") == 1.0
    except Exception:
        db_ok = False

    last_runs = {}
    if db_ok:
        for worker_id in ("odds_poller", "result_settler"):
            last_runs[worker_id] = await get_synced_at(worker_id)

    return {
        "status": "healthy" if db_ok else "degraded",
        "db": "connected" if db_ok else "disconnected",
        "odds_provider": {
            "circuit_open": odds_provider.circuit_open,
            "api_usage": odds_provider.api_usage,
        },
        "scheduler": {
            "running": scheduler.running,
            "jobs": [job.id for job in scheduler.get_jobs()],
            "last_runs": last_runs,
        },
    }
