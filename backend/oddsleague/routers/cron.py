"""
backend/oddsleague/routers/cron.py

Purpose:
    Endpoints for an external scheduler (e.g. a platform cron) that run the
    same jobs as the in-process APScheduler. Protected by CRON_SECRET.
    A run with a failed step answers 207 with the per-step results.

Dependencies:
    - oddsleague.services.auth_service
    - oddsleague.workers.odds_poller
    - oddsleague.workers.result_settler
"""

from fastapi import APIRouter, Depends
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from oddsleague.services.auth_service import require_cron
from oddsleague.workers.odds_poller import poll_odds
from oddsleague.workers.result_settler import sync_and_settle

router = APIRouter(
    prefix="/api/cron",
    tags=["cron"],
    dependencies=[Depends(require_cron)],
)


def _job_response(result: dict) -> JSONResponse:
    return JSONResponse(
        status_code=200 if result["ok"] else 207,
        content=jsonable_encoder(result),
    )


@router.get("/odds")
async def cron_odds():
    """Map events, refresh current odds and lock odds in one pass."""
    return _job_response(await poll_odds())


@router.get("/sync-results")
async def cron_sync_results():
    """Sync final scores, then settle the current gameweek."""
    return _job_response(await sync_and_settle())
