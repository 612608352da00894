"""
backend/oddsleague/services/odds_lock_service.py

Purpose:
    Transition a fixture's mutable current odds into its immutable locked
    snapshot exactly once inside the pre-kickoff window, then copy the locked
    price onto every prediction of that fixture that has not captured one.

    Concurrency control is the conditional write itself: the lock update only
    matches while odds_locked_at is still null, so of two overlapping runs
    exactly one wins; the loser sees matched_count == 0 and moves on.

Dependencies:
    - oddsleague.database
    - oddsleague.providers.odds_api
    - oddsleague.services.scoring_service
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Optional

from pymongo.errors import PyMongoError

import oddsleague.database as _db
from oddsleague.config import require_setting, settings
from oddsleague.providers.base import BaseOddsProvider
from oddsleague.providers.odds_api import (
    bookmaker_label,
    extract_h2h_prices,
    odds_provider,
    pick_preferred_bookmaker,
)
from oddsleague.services.scoring_service import PICK_TO_ODDS_KEY, positive_odds
from oddsleague.utils import utcnow

logger = logging.getLogger("oddsleague.odds_lock")


def complete_odds(snapshot: dict | None) -> Optional[dict[str, float]]:
    """All three prices > 0, or None. Never lock a partial three-way market."""
    if not snapshot:
        return None
    prices = {key: positive_odds(snapshot.get(key)) for key in ("home", "draw", "away")}
    if any(price is None for price in prices.values()):
        return None
    return prices


def resolve_lock_odds(
    fixture: dict,
    events_by_id: dict[str, dict],
    preferred: list[str],
) -> tuple[Optional[dict[str, float]], Optional[str]]:
    """Odds to lock for a fixture plus the bookmaker label.

    Live provider event first (preferred bookmaker, else the first offered),
    then the fixture's last complete current-odds snapshot.
    """
    event = events_by_id.get(fixture.get("odds_api_event_id"))
    if event:
        bookmaker = pick_preferred_bookmaker(event.get("bookmakers"), preferred)
        prices = complete_odds(extract_h2h_prices(event, bookmaker))
        if prices:
            return prices, bookmaker_label(bookmaker)

    prices = complete_odds(fixture.get("current_odds"))
    if prices:
        return prices, None
    return None, None


class OddsLockManager:
    """Locks fixture odds inside [now + safety margin, now + horizon]."""

    def __init__(
        self,
        provider: BaseOddsProvider | None = None,
        *,
        preferred_bookmakers: list[str] | None = None,
        safety_margin: timedelta | None = None,
        horizon: timedelta | None = None,
    ):
        self._provider = provider or odds_provider
        self._preferred = (
            preferred_bookmakers
            if preferred_bookmakers is not None
            else settings.preferred_bookmakers
        )
        self._safety_margin = safety_margin or timedelta(
            seconds=settings.ODDS_LOCK_SAFETY_MARGIN_SECONDS
        )
        self._horizon = horizon or timedelta(hours=settings.ODDS_LOCK_HORIZON_HOURS)

    def window(self, now: datetime) -> tuple[datetime, datetime]:
        return now + self._safety_margin, now + self._horizon

    async def find_lockable_fixtures(self, now: datetime) -> list[dict]:
        lock_from, lock_to = self.window(now)
        return await _db.db.fixtures.find({
            "kickoff_time": {"$gte": lock_from, "$lte": lock_to},
            "odds_locked_at": None,
            "odds_api_event_id": {"$ne": None},
        }).to_list(length=None)

    async def lock_upcoming(
        self, now: datetime | None = None, events: list[dict] | None = None,
    ) -> dict[str, Any]:
        """One locking pass. Safe to run repeatedly and concurrently.

        Raises ConfigurationError before reading anything when the odds API
        key is missing, and OddsProviderError (with nothing written) when the
        batch fetch fails. `events` lets a caller reuse a batch it already
        fetched in the same pass.
        """
        require_setting("ODDS_API_KEY")
        now = now or utcnow()
        lock_from, lock_to = self.window(now)
        summary: dict[str, Any] = {
            "fixtures_considered": 0,
            "odds_locked": 0,
            "fixtures_skipped": 0,
            "fixtures_already_locked": 0,
            "predictions_snapshotted": 0,
            "bookmaker_preference": list(self._preferred),
            "window": {"lock_from": lock_from.isoformat(), "lock_to": lock_to.isoformat()},
            "note": None,
        }

        fixtures = await self.find_lockable_fixtures(now)
        summary["fixtures_considered"] = len(fixtures)
        if not fixtures:
            summary["note"] = "No unlocked fixtures kicking off in the lock window."
            return summary

        # One batch fetch for every fixture; failure propagates before any write.
        if events is None:
            events = await self._provider.get_events()
        events_by_id = {e.get("id"): e for e in events if e.get("id")}

        for fixture in fixtures:
            fixture_id = str(fixture["_id"])
            prices, label = resolve_lock_odds(fixture, events_by_id, self._preferred)
            if prices is None:
                summary["fixtures_skipped"] += 1
                logger.warning(
                    "No complete odds for fixture %s (%s vs %s), leaving unlocked",
                    fixture_id, fixture.get("home_team", "?"), fixture.get("away_team", "?"),
                )
                continue

            try:
                won = await self.lock_fixture(fixture, prices, label, now)
            except PyMongoError as exc:
                summary["fixtures_skipped"] += 1
                logger.error("Lock write failed for fixture %s: %s", fixture_id, exc)
                continue

            if not won:
                summary["fixtures_already_locked"] += 1
                logger.info("Fixture %s was locked by a concurrent run, skipping", fixture_id)
                continue

            summary["odds_locked"] += 1
            summary["predictions_snapshotted"] += await self.snapshot_predictions(fixture_id, prices)

        if summary["odds_locked"] == 0 and summary["fixtures_skipped"]:
            summary["note"] = "No fixture had resolvable odds; will retry next run."

        logger.info(
            "Odds lock pass: %d considered, %d locked, %d skipped, %d already locked, %d predictions snapshotted",
            summary["fixtures_considered"], summary["odds_locked"], summary["fixtures_skipped"],
            summary["fixtures_already_locked"], summary["predictions_snapshotted"],
        )
        return summary

    async def lock_fixture(
        self, fixture: dict, prices: dict[str, float], label: str | None, now: datetime,
    ) -> bool:
        """Compare-and-swap null -> locked. True only for the run that flipped the edge."""
        result = await _db.db.fixtures.update_one(
            {"_id": fixture["_id"], "odds_locked_at": None},
            {"$set": {
                "locked_odds": {**prices, "bookmaker": label},
                "odds_locked_at": now,
            }},
        )
        return result.matched_count == 1

    async def snapshot_predictions(self, fixture_id: str, prices: dict[str, float]) -> int:
        """Copy the locked price onto predictions that never captured one.

        Predictions priced at submission keep their submission odds.
        """
        snapshotted = 0
        for pick, key in PICK_TO_ODDS_KEY.items():
            try:
                result = await _db.db.predictions.update_many(
                    {"fixture_id": fixture_id, "pick": pick, "locked_odds": None},
                    {"$set": {"locked_odds": prices[key]}},
                )
            except PyMongoError as exc:
                logger.error(
                    "Odds snapshot failed for fixture %s pick %s: %s", fixture_id, pick, exc,
                )
                continue
            snapshotted += result.modified_count
        return snapshotted


odds_lock_manager = OddsLockManager()
