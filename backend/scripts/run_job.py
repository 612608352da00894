"""
backend/scripts/run_job.py

Purpose:
    Manual trigger for the scheduled jobs and for one-off settlement, using
    the same services as the API. Prints the job summary.

Usage:
    cd backend && python -m scripts.run_job odds
    cd backend && python -m scripts.run_job lock-odds
    cd backend && python -m scripts.run_job results
    cd backend && python -m scripts.run_job settle-gameweek --season 2025/26 --gameweek 12
    cd backend && python -m scripts.run_job settle-fixture <fixture_id> --home-goals 2 --away-goals 1
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from typing import Any

import oddsleague.database as _db
from oddsleague.config import ConfigurationError, settings
from oddsleague.middleware.logging import setup_logging
from oddsleague.providers.base import ProviderError
from oddsleague.services.odds_lock_service import odds_lock_manager
from oddsleague.services.settlement_service import (
    FixtureNotFoundError,
    SettlementInvariantError,
    settle_fixture,
    settle_gameweek,
)
from oddsleague.workers.odds_poller import poll_odds
from oddsleague.workers.result_settler import sync_and_settle

logger = logging.getLogger("oddsleague.run_job")


async def _dispatch(args: argparse.Namespace) -> dict[str, Any]:
    if args.job == "odds":
        return await poll_odds()
    if args.job == "lock-odds":
        return await odds_lock_manager.lock_upcoming()
    if args.job == "results":
        return await sync_and_settle()
    if args.job == "settle-gameweek":
        return await settle_gameweek(args.season, args.gameweek)
    return await settle_fixture(args.fixture_id, args.home_goals, args.away_goals)


async def _run(args: argparse.Namespace) -> int:
    try:
        await _db.connect_db()
    except ConfigurationError as exc:
        print(json.dumps({"ok": False, "error": str(exc)}))
        return 2

    try:
        summary = await _dispatch(args)
    except ConfigurationError as exc:
        print(json.dumps({"ok": False, "error": str(exc)}))
        return 2
    except (ProviderError, SettlementInvariantError, FixtureNotFoundError) as exc:
        print(json.dumps({"ok": False, "error": str(exc)}))
        return 1
    finally:
        await _db.close_db()

    print(json.dumps(summary, indent=2, default=str))
    return 0 if summary.get("ok", True) else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run an odds league job once.")
    sub = parser.add_subparsers(dest="job", required=True)

    sub.add_parser("odds", help="Map events, refresh current odds, lock odds.")
    sub.add_parser("lock-odds", help="Lock odds for fixtures inside the lock window.")
    sub.add_parser("results", help="Sync final scores and settle the current gameweek.")

    gameweek = sub.add_parser("settle-gameweek", help="Settle all finished fixtures of a gameweek.")
    gameweek.add_argument("--season", default=settings.DEFAULT_SEASON)
    gameweek.add_argument("--gameweek", type=int, default=None, help="Default: latest finished.")

    fixture = sub.add_parser("settle-fixture", help="Settle one fixture.")
    fixture.add_argument("fixture_id")
    fixture.add_argument("--home-goals", type=int, default=None)
    fixture.add_argument("--away-goals", type=int, default=None)
    return parser


async def main() -> int:
    args = build_parser().parse_args()
    setup_logging(settings.LOG_LEVEL)
    return await _run(args)


if __name__ == "__main__":
    raise SystemExit(asyncio.run(main()))
