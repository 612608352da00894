"""
backend/oddsleague/routers/admin.py

Purpose:
    Admin HTTP router for manual odds and settlement operations. Every
    endpoint is an idempotent trigger of the same pass the scheduler runs.

Dependencies:
    - oddsleague.services.auth_service
    - oddsleague.services.odds_lock_service
    - oddsleague.services.odds_service
    - oddsleague.services.settlement_service
    - oddsleague.services.results_service
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends

from oddsleague.models.admin import FixtureScoreUpdate, SettleFixtureRequest, SettleGameweekRequest
from oddsleague.services.auth_service import require_admin
from oddsleague.services.odds_lock_service import odds_lock_manager
from oddsleague.services.odds_service import map_odds_events, refresh_current_odds
from oddsleague.services.results_service import sync_results, update_fixture_score
from oddsleague.services.settlement_service import settle_fixture, settle_gameweek

logger = logging.getLogger("oddsleague.admin")

router = APIRouter(
    prefix="/api/admin",
    tags=["admin"],
    dependencies=[Depends(require_admin)],
)


@router.post("/lock-odds")
async def lock_odds() -> dict[str, Any]:
    """Lock odds for fixtures kicking off inside the lock window."""
    summary = await odds_lock_manager.lock_upcoming()
    logger.info("Admin triggered odds lock: %d locked", summary["odds_locked"])
    return summary


@router.post("/refresh-odds")
async def refresh_odds() -> dict[str, Any]:
    return await refresh_current_odds()


@router.post("/map-odds")
async def map_odds() -> dict[str, Any]:
    return await map_odds_events()


@router.post("/settle-fixture")
async def settle_one_fixture(body: SettleFixtureRequest) -> dict[str, Any]:
    """Settle one fixture, recording the final score first when provided."""
    summary = await settle_fixture(body.fixture_id, body.home_goals, body.away_goals)
    logger.info(
        "Admin settled fixture %s: %d predictions", body.fixture_id, summary["predictions_settled"],
    )
    return summary


@router.post("/settle-gameweek")
async def settle_one_gameweek(body: Optional[SettleGameweekRequest] = None) -> dict[str, Any]:
    """Settle a gameweek; without a body, the gameweek of the latest finished fixture."""
    body = body or SettleGameweekRequest()
    return await settle_gameweek(body.season, body.gameweek)


@router.post("/update-fixture-result")
async def update_fixture_result(body: FixtureScoreUpdate) -> dict[str, Any]:
    """Live score correction only; use settle-fixture once the match is over."""
    return await update_fixture_score(body.fixture_id, body.home_goals, body.away_goals)


@router.post("/sync-results")
async def sync_fixture_results() -> dict[str, Any]:
    return await sync_results()
