"""
backend/oddsleague/services/odds_service.py

Purpose:
    Pre-lock odds maintenance: link fixtures to provider events and keep the
    mutable current-odds snapshot fresh until the fixture is locked.

Dependencies:
    - oddsleague.database
    - oddsleague.providers.odds_api
    - oddsleague.utils.team_matching
"""

from __future__ import annotations

import logging
from datetime import datetime, time, timedelta, timezone
from typing import Any

from pymongo.errors import DuplicateKeyError, PyMongoError

import oddsleague.database as _db
from oddsleague.config import require_setting, settings
from oddsleague.providers.base import BaseOddsProvider
from oddsleague.providers.odds_api import (
    bookmaker_label,
    extract_h2h_prices,
    odds_provider,
    pick_preferred_bookmaker,
)
from oddsleague.services.odds_lock_service import complete_odds
from oddsleague.utils import ensure_utc, parse_utc, utcnow
from oddsleague.utils.team_matching import fixture_matches

logger = logging.getLogger("oddsleague.odds_service")


def _event_kickoff(event: dict) -> datetime | None:
    try:
        return parse_utc(event["commence_time"])
    except (KeyError, TypeError, ValueError):
        return None


async def map_odds_events(
    provider: BaseOddsProvider | None = None,
    events: list[dict] | None = None,
) -> dict[str, Any]:
    """Set odds_api_event_id on unmapped fixtures by same-day kickoff + team names."""
    require_setting("ODDS_API_KEY")
    if events is None:
        events = await (provider or odds_provider).get_events()

    dated = [(e, _event_kickoff(e)) for e in events if e.get("id")]
    dated = [(e, k) for e, k in dated if k is not None]
    if not dated:
        return {"events": len(events), "fixtures_in_window": 0, "mapped": 0,
                "unmatched": 0, "note": "No odds events returned."}

    first_day = min(k for _, k in dated).date()
    last_day = max(k for _, k in dated).date()
    window_from = datetime.combine(first_day, time.min, tzinfo=timezone.utc)
    window_to = datetime.combine(last_day, time.max, tzinfo=timezone.utc)

    fixtures = await _db.db.fixtures.find({
        "kickoff_time": {"$gte": window_from, "$lte": window_to},
        "odds_api_event_id": None,
    }).to_list(length=None)

    used: set[str] = set()
    mapped = 0
    unmatched = 0
    for fixture in fixtures:
        kickoff_day = ensure_utc(fixture["kickoff_time"]).date()
        match = next(
            (
                e for e, k in dated
                if e["id"] not in used
                and k.date() == kickoff_day
                and fixture_matches(
                    fixture.get("home_team", ""), fixture.get("away_team", ""),
                    e.get("home_team", ""), e.get("away_team", ""),
                )
            ),
            None,
        )
        if match is None:
            unmatched += 1
            continue

        try:
            result = await _db.db.fixtures.update_one(
                {"_id": fixture["_id"], "odds_api_event_id": None},
                {"$set": {"odds_api_event_id": match["id"]}},
            )
        except DuplicateKeyError:
            logger.warning(
                "Odds event %s already mapped to another fixture, skipping %s",
                match["id"], fixture["_id"],
            )
            continue
        used.add(match["id"])
        mapped += result.modified_count

    logger.info(
        "Odds mapping: %d events, %d unmapped fixtures in window, %d mapped, %d unmatched",
        len(events), len(fixtures), mapped, unmatched,
    )
    return {
        "events": len(events),
        "fixtures_in_window": len(fixtures),
        "mapped": mapped,
        "unmatched": unmatched,
        "note": None,
    }


async def refresh_current_odds(
    provider: BaseOddsProvider | None = None,
    events: list[dict] | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Overwrite current_odds for unlocked fixtures kicking off in the lookahead window."""
    require_setting("ODDS_API_KEY")
    now = now or utcnow()
    fixtures = await _db.db.fixtures.find({
        "kickoff_time": {
            "$gt": now,
            "$lte": now + timedelta(days=settings.ODDS_REFRESH_LOOKAHEAD_DAYS),
        },
        "odds_locked_at": None,
        "odds_api_event_id": {"$ne": None},
    }).to_list(length=None)

    if not fixtures:
        return {"fixtures_checked": 0, "fixtures_updated": 0,
                "note": "No unlocked mapped fixtures in the refresh window."}

    if events is None:
        events = await (provider or odds_provider).get_events()
    events_by_id = {e.get("id"): e for e in events if e.get("id")}

    updated = 0
    for fixture in fixtures:
        event = events_by_id.get(fixture["odds_api_event_id"])
        if not event:
            continue
        bookmaker = pick_preferred_bookmaker(event.get("bookmakers"))
        prices = complete_odds(extract_h2h_prices(event, bookmaker))
        if not prices:
            continue
        try:
            # Locked fixtures keep their last pre-lock snapshot.
            result = await _db.db.fixtures.update_one(
                {"_id": fixture["_id"], "odds_locked_at": None},
                {"$set": {"current_odds": {
                    **prices,
                    "bookmaker": bookmaker_label(bookmaker),
                    "updated_at": now,
                }}},
            )
        except PyMongoError as exc:
            logger.error("Current odds write failed for fixture %s: %s", fixture["_id"], exc)
            continue
        updated += result.matched_count

    logger.info("Current odds refresh: %d checked, %d updated", len(fixtures), updated)
    return {"fixtures_checked": len(fixtures), "fixtures_updated": updated, "note": None}
