"""
backend/oddsleague/services/settlement_service.py

Purpose:
    Apply the scoring rules to every outstanding prediction of a finished
    fixture (or of all finished fixtures of a gameweek) exactly once.

    "Outstanding" means settled_at is null. Each prediction is written with a
    conditional update that still requires settled_at to be null, so re-runs
    and overlapping runs never award points twice. Per-prediction failures are
    logged and counted; the rest of the batch continues.

Dependencies:
    - oddsleague.database
    - oddsleague.services.scoring_service
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo.errors import PyMongoError

import oddsleague.database as _db
from oddsleague.config import settings
from oddsleague.services.scoring_service import odds_for_pick, score_prediction
from oddsleague.utils import utcnow

logger = logging.getLogger("oddsleague.settlement")


class SettlementInvariantError(ValueError):
    """Settlement requested on data that cannot be settled (no result, bad goals)."""


class FixtureNotFoundError(LookupError):
    """No fixture with the requested id."""


def is_goal_count(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def recorded_score(fixture: dict) -> Optional[tuple[int, int]]:
    """(home, away) when the fixture carries a valid final score, else None."""
    home, away = fixture.get("home_goals"), fixture.get("away_goals")
    if is_goal_count(home) and is_goal_count(away):
        return home, away
    return None


def fallback_odds_for_pick(fixture: dict, pick: Any) -> Optional[float]:
    """Fixture-level price for a pick: current odds first, then locked odds."""
    return (
        odds_for_pick(fixture.get("current_odds"), pick)
        or odds_for_pick(fixture.get("locked_odds"), pick)
    )


def fixture_object_id(fixture_id: str) -> ObjectId:
    try:
        return ObjectId(fixture_id)
    except (InvalidId, TypeError) as exc:
        raise FixtureNotFoundError(f"Fixture {fixture_id} not found.") from exc


def _empty_summary() -> dict[str, Any]:
    return {
        "fixtures_processed": 0,
        "fixtures_skipped": 0,
        "predictions_considered": 0,
        "predictions_settled": 0,
        "predictions_failed": 0,
        "note": None,
    }


async def settle_predictions_for_fixture(
    fixture: dict, now: datetime | None = None,
) -> dict[str, int]:
    """Score and write every unsettled prediction of one finished fixture."""
    now = now or utcnow()
    home_goals, away_goals = recorded_score(fixture)
    result = {"home_goals": home_goals, "away_goals": away_goals}
    fixture_id = str(fixture["_id"])

    predictions = await _db.db.predictions.find(
        {"fixture_id": fixture_id, "settled_at": None}
    ).to_list(length=None)

    counts = {"considered": len(predictions), "settled": 0, "failed": 0}
    for prediction in predictions:
        try:
            scored = score_prediction(
                prediction, result, fallback_odds_for_pick(fixture, prediction.get("pick")),
            )
            write = await _db.db.predictions.update_one(
                {"_id": prediction["_id"], "settled_at": None},
                {"$set": {
                    "points_awarded": scored.points_awarded,
                    "bonus_exact_score_points": scored.bonus_exact_score_points,
                    "correct_result": scored.correct_result,
                    "exact_score": scored.exact_score,
                    "settled_at": now,
                }},
            )
        except (PyMongoError, ValueError, TypeError) as exc:
            counts["failed"] += 1
            logger.error(
                "Settlement failed for prediction %s (fixture %s): %s",
                prediction.get("_id"), fixture_id, exc,
            )
            continue

        if write.matched_count == 1:
            counts["settled"] += 1
        else:
            logger.info(
                "Prediction %s was settled by a concurrent run, skipping", prediction["_id"],
            )

    return counts


def _add_counts(summary: dict[str, Any], counts: dict[str, int]) -> None:
    summary["fixtures_processed"] += 1
    summary["predictions_considered"] += counts["considered"]
    summary["predictions_settled"] += counts["settled"]
    summary["predictions_failed"] += counts["failed"]


async def settle_fixture(
    fixture_id: str,
    home_goals: int | None = None,
    away_goals: int | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Settle one fixture, optionally recording its final score first.

    Raises FixtureNotFoundError for an unknown id and SettlementInvariantError
    (before any write) for invalid goals or a fixture with no final result.
    """
    fresh_result = home_goals is not None or away_goals is not None
    if fresh_result and not (is_goal_count(home_goals) and is_goal_count(away_goals)):
        raise SettlementInvariantError(
            "home_goals and away_goals must both be non-negative integers."
        )

    oid = fixture_object_id(fixture_id)
    fixture = await _db.db.fixtures.find_one({"_id": oid})
    if not fixture:
        raise FixtureNotFoundError(f"Fixture {fixture_id} not found.")

    if fresh_result:
        # Result first, as its own idempotent step: a crash after this line
        # leaves a finished fixture that the next run settles normally.
        await _db.db.fixtures.update_one(
            {"_id": oid},
            {"$set": {"status": "finished", "home_goals": home_goals, "away_goals": away_goals}},
        )
        fixture = {**fixture, "status": "finished", "home_goals": home_goals, "away_goals": away_goals}
    elif fixture.get("status") != "finished" or recorded_score(fixture) is None:
        raise SettlementInvariantError(
            f"Fixture {fixture_id} has no final result; provide home_goals and away_goals."
        )

    summary = _empty_summary()
    counts = await settle_predictions_for_fixture(fixture, now)
    _add_counts(summary, counts)
    summary["fixture_id"] = fixture_id
    summary["result"] = {"home_goals": fixture["home_goals"], "away_goals": fixture["away_goals"]}
    if counts["considered"] == 0:
        summary["note"] = "No unsettled predictions for this fixture."

    logger.info(
        "Settled fixture %s (%d-%d): %d/%d predictions, %d failed",
        fixture_id, fixture["home_goals"], fixture["away_goals"],
        counts["settled"], counts["considered"], counts["failed"],
    )
    return summary


async def resolve_current_gameweek(season: str | None = None) -> Optional[int]:
    """Gameweek of the most recently kicked-off finished fixture in the season."""
    latest = await _db.db.fixtures.find_one(
        {"season": season or settings.DEFAULT_SEASON, "status": "finished"},
        sort=[("kickoff_time", -1)],
    )
    if not latest or latest.get("gameweek") is None:
        return None
    return int(latest["gameweek"])


async def settle_gameweek(
    season: str | None = None,
    gameweek: int | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Settle every finished fixture of a gameweek (default: the current one)."""
    season = season or settings.DEFAULT_SEASON
    if gameweek is None:
        gameweek = await resolve_current_gameweek(season)
        if gameweek is None:
            raise SettlementInvariantError(
                f"No finished fixtures in season {season}; cannot determine the current gameweek."
            )

    now = now or utcnow()
    summary = _empty_summary()
    summary["season"] = season
    summary["gameweek"] = gameweek

    fixtures = await _db.db.fixtures.find(
        {"season": season, "gameweek": gameweek, "status": "finished"}
    ).to_list(length=None)

    for fixture in fixtures:
        if recorded_score(fixture) is None:
            summary["fixtures_skipped"] += 1
            logger.warning(
                "Fixture %s is finished but has no recorded score, skipping", fixture["_id"],
            )
            continue
        _add_counts(summary, await settle_predictions_for_fixture(fixture, now))

    if not fixtures:
        summary["note"] = f"No finished fixtures in gameweek {gameweek}."
    elif summary["predictions_considered"] == 0:
        summary["note"] = "All predictions for this gameweek are already settled."

    logger.info(
        "Settled gameweek %s/%s: %d fixtures (%d skipped), %d/%d predictions, %d failed",
        season, gameweek, summary["fixtures_processed"], summary["fixtures_skipped"],
        summary["predictions_settled"], summary["predictions_considered"],
        summary["predictions_failed"],
    )
    return summary
