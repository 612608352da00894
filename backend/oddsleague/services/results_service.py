"""
backend/oddsleague/services/results_service.py

Purpose:
    Final and live score ingestion. Result sync pulls football-data.org
    matches around today and writes status/score onto the matching fixtures;
    it never settles predictions and never moves a finished fixture back to
    scheduled.

Dependencies:
    - oddsleague.database
    - oddsleague.providers.football_data
    - oddsleague.utils.team_matching
"""

from __future__ import annotations

import logging
from datetime import datetime, time, timedelta, timezone
from typing import Any

from pymongo.errors import PyMongoError

import oddsleague.database as _db
from oddsleague.config import require_setting, settings
from oddsleague.providers.base import BaseResultProvider
from oddsleague.providers.football_data import football_data_provider
from oddsleague.services.settlement_service import (
    FixtureNotFoundError,
    SettlementInvariantError,
    fixture_object_id,
    is_goal_count,
)
from oddsleague.utils import ensure_utc, utcnow
from oddsleague.utils.team_matching import fixture_matches

logger = logging.getLogger("oddsleague.results")


def _kickoff_hour(dt: datetime) -> datetime:
    return ensure_utc(dt).replace(minute=0, second=0, microsecond=0)


def find_fixture_for_match(match: dict, fixtures: list[dict]) -> dict | None:
    """Same kickoff hour (UTC) and both team names matching."""
    match_hour = _kickoff_hour(match["utc_date"])
    for fixture in fixtures:
        if _kickoff_hour(fixture["kickoff_time"]) != match_hour:
            continue
        if fixture_matches(
            fixture.get("home_team", ""), fixture.get("away_team", ""),
            match["home_team"], match["away_team"],
        ):
            return fixture
    return None


async def sync_results(
    provider: BaseResultProvider | None = None,
    now: datetime | None = None,
    season: str | None = None,
) -> dict[str, Any]:
    """Write provider results onto fixtures in [today - RESULT_SYNC_DAYS_BACK, today + 1]."""
    require_setting("FOOTBALL_DATA_API_KEY")
    now = now or utcnow()
    season = season or settings.DEFAULT_SEASON
    date_from = (now - timedelta(days=settings.RESULT_SYNC_DAYS_BACK)).date()
    date_to = (now + timedelta(days=1)).date()

    matches = await (provider or football_data_provider).get_matches(date_from, date_to)

    fixtures = await _db.db.fixtures.find({
        "season": season,
        "kickoff_time": {
            "$gte": datetime.combine(date_from, time.min, tzinfo=timezone.utc),
            "$lte": datetime.combine(date_to, time.max, tzinfo=timezone.utc),
        },
    }).to_list(length=None)

    summary = {
        "api_matches": len(matches),
        "fixtures_in_range": len(fixtures),
        "finished": 0,
        "live_scores": 0,
        "unmatched": 0,
        "failed": 0,
        "date_from": date_from.isoformat(),
        "date_to": date_to.isoformat(),
    }

    for match in matches:
        fixture = find_fixture_for_match(match, fixtures)
        if fixture is None:
            summary["unmatched"] += 1
            continue
        if match["home_score"] is None or match["away_score"] is None:
            continue

        score = {"home_goals": match["home_score"], "away_goals": match["away_score"]}
        update = {**score, "status": "finished"} if match["finished"] else score
        try:
            # Finished fixtures are final: neither live scores nor re-syncs touch them.
            result = await _db.db.fixtures.update_one(
                {"_id": fixture["_id"], "status": {"$ne": "finished"}},
                {"$set": update},
            )
        except PyMongoError as exc:
            summary["failed"] += 1
            logger.error("Result write failed for fixture %s: %s", fixture["_id"], exc)
            continue

        if result.modified_count:
            summary["finished" if match["finished"] else "live_scores"] += 1

    logger.info(
        "Result sync %s..%s: %d matches, %d fixtures, %d finished, %d live, %d unmatched",
        date_from, date_to, summary["api_matches"], summary["fixtures_in_range"],
        summary["finished"], summary["live_scores"], summary["unmatched"],
    )
    return summary


async def update_fixture_score(fixture_id: str, home_goals: int, away_goals: int) -> dict[str, Any]:
    """Set the score only. No status change, no settlement."""
    if not (is_goal_count(home_goals) and is_goal_count(away_goals)):
        raise SettlementInvariantError(
            "home_goals and away_goals must both be non-negative integers."
        )
    result = await _db.db.fixtures.update_one(
        {"_id": fixture_object_id(fixture_id)},
        {"$set": {"home_goals": home_goals, "away_goals": away_goals}},
    )
    if result.matched_count == 0:
        raise FixtureNotFoundError(f"Fixture {fixture_id} not found.")
    logger.info("Score for fixture %s set to %d-%d", fixture_id, home_goals, away_goals)
    return {"fixture_id": fixture_id, "home_goals": home_goals, "away_goals": away_goals}
