import logging
from datetime import datetime
from typing import Any, Optional

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import HTTPException, status
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from oddsleague.config import settings
import oddsleague.database as _db
from oddsleague.services.scoring_service import (
    PICKS,
    normalize_pick,
    odds_for_pick,
    outcome_from_score,
    potential_points,
)
from oddsleague.services.settlement_service import is_goal_count
from oddsleague.utils import ensure_utc, utcnow

logger = logging.getLogger("oddsleague.prediction_service")


async def _get_fixture(fixture_id: str) -> dict:
    try:
        oid = ObjectId(fixture_id)
    except (InvalidId, TypeError):
        oid = None
    fixture = await _db.db.fixtures.find_one({"_id": oid}) if oid else None
    if not fixture:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Fixture not found.",
        )
    return fixture


def snapshot_odds(fixture: dict, pick: str) -> Optional[float]:
    """Locked price for the pick, else the current price, else None (captured at lock time)."""
    return (
        odds_for_pick(fixture.get("locked_odds"), pick)
        or odds_for_pick(fixture.get("current_odds"), pick)
    )


async def submit_prediction(
    user_id: str,
    fixture_id: str,
    pred_home_goals: int,
    pred_away_goals: int,
    pick: str | None = None,
    league_id: str | None = None,
    now: datetime | None = None,
) -> dict:
    """Create or overwrite a user's forecast for a fixture before kickoff.

    Validates:
    - Goals are non-negative integers
    - An explicit pick agrees with the scoreline
    - Fixture exists and has not kicked off
    - League membership when a league is given
    """
    if not (is_goal_count(pred_home_goals) and is_goal_count(pred_away_goals)):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Predicted goals must be non-negative integers.",
        )

    derived_pick = outcome_from_score(pred_home_goals, pred_away_goals)
    if pick is not None and str(pick).strip():
        explicit = normalize_pick(pick)
        if explicit is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Invalid pick. Allowed: {', '.join(PICKS)}",
            )
        if explicit != derived_pick:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Score must match result (home win / draw / away win).",
            )

    fixture = await _get_fixture(fixture_id)

    now = now or utcnow()
    if ensure_utc(fixture["kickoff_time"]) <= now:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Predictions closed (kickoff passed).",
        )

    league_id = league_id.strip() if isinstance(league_id, str) else league_id
    league_id = league_id or None
    if league_id:
        member = await _db.db.league_members.find_one(
            {"league_id": league_id, "user_id": user_id}, {"_id": 1}
        )
        if not member:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Not a member of this league.",
            )

    fixture_key = str(fixture["_id"])
    fields = {
        "pick": derived_pick,
        "stake": settings.DEFAULT_STAKE,
        "locked_odds": snapshot_odds(fixture, derived_pick),
        "pred_home_goals": pred_home_goals,
        "pred_away_goals": pred_away_goals,
        "submitted_at": now,
    }

    try:
        # settled_at in the filter: a settled row never matches, so it can
        # only collide on the unique index instead of being overwritten.
        doc = await _db.db.predictions.find_one_and_update(
            {
                "user_id": user_id,
                "fixture_id": fixture_key,
                "league_id": league_id,
                "settled_at": None,
            },
            {
                "$set": fields,
                "$setOnInsert": {
                    "points_awarded": None,
                    "bonus_exact_score_points": None,
                    "correct_result": None,
                    "exact_score": None,
                },
            },
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
    except DuplicateKeyError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="This prediction is already settled.",
        )

    logger.info(
        "Prediction saved: user=%s fixture=%s league=%s %d-%d (%s) odds=%s",
        user_id, fixture_key, league_id, pred_home_goals, pred_away_goals,
        derived_pick, fields["locked_odds"],
    )
    return doc


async def get_user_predictions(
    user_id: str, fixture_ids: list[str], league_id: str | None = None,
) -> list[dict]:
    """The user's predictions for the given fixtures in one scope (global when league_id is None)."""
    if not fixture_ids:
        return []
    return await _db.db.predictions.find({
        "user_id": user_id,
        "fixture_id": {"$in": fixture_ids},
        "league_id": league_id or None,
    }).to_list(length=len(fixture_ids))


async def potential_points_for_fixture(fixture_id: str) -> dict[str, Any]:
    """What each pick would pay at the fixture's locked (else current) odds."""
    fixture = await _get_fixture(fixture_id)
    locked = fixture.get("locked_odds") if fixture.get("odds_locked_at") else None

    picks: dict[str, Any] = {}
    for pick in PICKS:
        odds = odds_for_pick(locked, pick) or odds_for_pick(fixture.get("current_odds"), pick)
        preview = potential_points(odds)
        picks[pick] = {
            "odds": odds,
            "result_points": preview.result_points,
            "exact_score_bonus": preview.exact_score_bonus,
        }

    return {
        "fixture_id": str(fixture["_id"]),
        "odds_locked": locked is not None,
        "stake": settings.DEFAULT_STAKE,
        "picks": picks,
    }
