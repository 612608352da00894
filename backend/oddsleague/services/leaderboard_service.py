"""
backend/oddsleague/services/leaderboard_service.py

Purpose:
    Leaderboard aggregation over settled predictions. Totals, accuracy and
    exact-score counts are recomputed on every request and never persisted.

    Ordering is total points desc, accuracy desc, correct scores desc, then
    user_id asc so equal users always come back in the same order. Ranks are
    assigned on the full board before the display-name search is applied.

Dependencies:
    - oddsleague.database
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping, Optional

from bson import ObjectId
from bson.errors import InvalidId

import oddsleague.database as _db
from oddsleague.config import settings

logger = logging.getLogger("oddsleague.leaderboard")

DEFAULT_DISPLAY_NAME = "Player"


def _row_points(row: Mapping[str, Any]) -> tuple[int, int]:
    return int(row.get("points_awarded") or 0), int(row.get("bonus_exact_score_points") or 0)


def aggregate_points_by_user(rows: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
    """Per-user totals from settled prediction rows, already in leaderboard order.

    Accuracy counts correct results and correct_scores counts exact scores.
    Rows settled before those flags were stored fall back to points > 0 and
    bonus > 0 respectively.
    """
    by_user: dict[str, dict[str, Any]] = {}
    for row in rows:
        user_id = str(row["user_id"])
        points, bonus = _row_points(row)
        correct = row.get("correct_result")
        exact = row.get("exact_score")

        entry = by_user.setdefault(
            user_id,
            {"user_id": user_id, "total_points": 0, "accuracy": 0, "correct_scores": 0},
        )
        entry["total_points"] += points + bonus
        if (correct if correct is not None else points > 0):
            entry["accuracy"] += 1
        if (exact if exact is not None else bonus > 0):
            entry["correct_scores"] += 1

    return sorted(
        by_user.values(),
        key=lambda e: (-e["total_points"], -e["accuracy"], -e["correct_scores"], e["user_id"]),
    )


def build_leaderboard_page(
    sorted_rows: list[dict[str, Any]],
    names: Mapping[str, str],
    search: str | None,
    offset: int,
    limit: int,
) -> dict[str, Any]:
    """Rank the full board, then search, then page. total_count is post-search."""
    ranked = [
        {
            "rank": i + 1,
            "user_id": row["user_id"],
            "display_name": names.get(row["user_id"]) or DEFAULT_DISPLAY_NAME,
            "total_points": row["total_points"],
            "accuracy": row["accuracy"],
            "correct_scores": row["correct_scores"],
        }
        for i, row in enumerate(sorted_rows)
    ]

    needle = (search or "").strip().lower()
    if needle:
        ranked = [e for e in ranked if needle in e["display_name"].lower()]

    return {"entries": ranked[offset:offset + limit], "total_count": len(ranked)}


def _parse_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        number = float(str(value).strip())
    except ValueError:
        return None
    if number != number or not number.is_integer():
        return None
    return int(number)


def parse_pagination(
    limit: Any = None, offset: Any = None, max_page_size: int | None = None,
) -> tuple[int, int]:
    """(limit, offset) from raw query values.

    Missing, non-numeric or < 1 limits fall back to the max page size, larger
    ones are clamped to it. Negative or invalid offsets become 0.
    """
    max_size = max_page_size or settings.LEADERBOARD_MAX_PAGE_SIZE
    parsed_limit = _parse_int(limit)
    if parsed_limit is None or parsed_limit < 1:
        parsed_limit = max_size
    parsed_offset = _parse_int(offset)
    if parsed_offset is None or parsed_offset < 0:
        parsed_offset = 0
    return min(parsed_limit, max_size), parsed_offset


def effective_gameweek(value: Any) -> Optional[int]:
    """Positive integer gameweek from user input ("12", " 12 ", "12.0"), else None (all gameweeks)."""
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    number = _parse_int(text)
    return number if number is not None and number >= 1 else None


def leaderboard_title(
    league_name: str | None, league_id: str | None, gameweek: int | None,
) -> str:
    suffix = f" (GW {gameweek})" if gameweek is not None else ""
    if not league_id:
        return f"Leaderboard{suffix}" if suffix else "Global leaderboard"
    name = (league_name or "").strip()
    if name:
        return f"{name} leaderboard{suffix}"
    return f"League leaderboard{suffix}"


def _id_query(value: str) -> Any:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return value


async def _league_name(league_id: str) -> Optional[str]:
    league = await _db.db.leagues.find_one({"_id": _id_query(league_id)}, {"name": 1})
    return league.get("name") if league else None


async def _league_member_ids(league_id: str) -> set[str]:
    members = await _db.db.league_members.find(
        {"league_id": league_id}, {"user_id": 1}
    ).to_list(length=None)
    return {str(m["user_id"]) for m in members}


async def _gameweek_fixture_ids(season: str, gameweek: int) -> list[str]:
    fixtures = await _db.db.fixtures.find(
        {"season": season, "gameweek": gameweek}, {"_id": 1}
    ).to_list(length=None)
    return [str(f["_id"]) for f in fixtures]


async def _display_names(user_ids: list[str]) -> dict[str, str]:
    if not user_ids:
        return {}
    users = await _db.db.users.find(
        {"_id": {"$in": user_ids}}, {"display_name": 1}
    ).to_list(length=None)
    return {str(u["_id"]): u.get("display_name") or DEFAULT_DISPLAY_NAME for u in users}


async def get_leaderboard(
    league_id: str | None = None,
    gameweek: int | None = None,
    search: str | None = None,
    offset: int = 0,
    limit: int | None = None,
    season: str | None = None,
) -> dict[str, Any]:
    """One leaderboard page.

    With a league: that league's predictions by its current members. Without:
    the global predictions (league_id null). A gameweek restricts to fixtures
    of that gameweek in the season.
    """
    limit, offset = parse_pagination(limit, offset)
    season = season or settings.DEFAULT_SEASON
    league_id = league_id or None

    query: dict[str, Any] = {"settled_at": {"$ne": None}, "league_id": league_id}
    if gameweek is not None:
        query["fixture_id"] = {"$in": await _gameweek_fixture_ids(season, gameweek)}

    rows = await _db.db.predictions.find(
        query,
        {
            "user_id": 1, "points_awarded": 1, "bonus_exact_score_points": 1,
            "correct_result": 1, "exact_score": 1,
        },
    ).to_list(length=None)

    league_name = None
    if league_id:
        members = await _league_member_ids(league_id)
        rows = [r for r in rows if str(r["user_id"]) in members]
        league_name = await _league_name(league_id)

    board = aggregate_points_by_user(rows)
    names = await _display_names([row["user_id"] for row in board])
    page = build_leaderboard_page(board, names, search, offset, limit)

    logger.debug(
        "Leaderboard league=%s gameweek=%s: %d users, %d after search",
        league_id, gameweek, len(board), page["total_count"],
    )
    return {
        **page,
        "league_id": league_id,
        "gameweek": gameweek,
        "offset": offset,
        "limit": limit,
        "title": leaderboard_title(league_name, league_id, gameweek),
    }
