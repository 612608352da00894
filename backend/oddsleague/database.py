"""
backend/oddsleague/database.py

Purpose:
    MongoDB connection bootstrap and index management for fixtures,
    predictions, leagues and worker state.

Dependencies:
    - motor.motor_asyncio
    - pymongo
    - oddsleague.config
"""

import logging

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError, OperationFailure

from oddsleague.config import require_setting, settings

client: AsyncIOMotorClient = None
db: AsyncIOMotorDatabase = None

logger = logging.getLogger("oddsleague.database")


async def connect_db() -> None:
    global client, db
    mongo_uri = require_setting("MONGO_URI")
    client = AsyncIOMotorClient(
        mongo_uri,
        maxPoolSize=25,
        minPoolSize=2,
    )
    db = client[settings.MONGO_DB]
    await _ensure_indexes()


async def close_db() -> None:
    global client
    if client:
        client.close()


async def _ensure_indexes() -> None:
    """Create indexes on startup. Idempotent, safe to run repeatedly."""

    # ---- Fixtures ----

    # Odds lock selection: kickoff window + still unlocked
    await db.fixtures.create_index([("kickoff_time", 1), ("odds_locked_at", 1)])
    # Gameweek settlement + leaderboard gameweek filter
    await db.fixtures.create_index([("season", 1), ("gameweek", 1), ("status", 1)])
    # "Current gameweek" = most recently finished fixture
    await db.fixtures.create_index([("season", 1), ("status", 1), ("kickoff_time", -1)])
    try:
        # Unmapped fixtures store null, so only string ids take part in uniqueness.
        await db.fixtures.create_index(
            "odds_api_event_id",
            unique=True,
            partialFilterExpression={"odds_api_event_id": {"$type": "string"}},
        )
    except (DuplicateKeyError, OperationFailure) as exc:
        logger.warning("Skipped unique odds_api_event_id index due to duplicate data: %s", exc)
        await db.fixtures.create_index(
            "odds_api_event_id", name="odds_api_event_id_lookup", sparse=True,
        )

    # ---- Predictions ----

    # One prediction per user, fixture and league scope (None = global)
    await db.predictions.create_index(
        [("user_id", 1), ("fixture_id", 1), ("league_id", 1)], unique=True
    )
    # Settlement: unsettled predictions of a fixture
    await db.predictions.create_index([("fixture_id", 1), ("settled_at", 1)])
    # Odds snapshot propagation
    await db.predictions.create_index([("fixture_id", 1), ("pick", 1), ("locked_odds", 1)])
    # Leaderboard scans
    await db.predictions.create_index([("league_id", 1), ("settled_at", 1)])

    # ---- Leagues ----

    await db.league_members.create_index([("league_id", 1), ("user_id", 1)], unique=True)
    await db.league_members.create_index("user_id")

    # ---- Users ----

    await db.users.create_index("display_name")
