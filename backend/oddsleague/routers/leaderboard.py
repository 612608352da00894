from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from oddsleague.models.leaderboard import LeaderboardPage
from oddsleague.services.leaderboard_service import (
    effective_gameweek,
    get_leaderboard,
    parse_pagination,
)
from oddsleague.services.rate_limiter import client_id

router = APIRouter(prefix="/api/leaderboard", tags=["leaderboard"])


async def enforce_rate_limit(request: Request) -> None:
    """429 once a client exceeds the leaderboard limiter's window."""
    limiter = getattr(request.app.state, "leaderboard_rate_limiter", None)
    if limiter is None:
        return
    if limiter.is_limited(client_id(request)):
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many requests. Try again in a minute.",
        )


@router.get("", response_model=LeaderboardPage, dependencies=[Depends(enforce_rate_limit)])
async def leaderboard(
    league_id: Optional[str] = Query(None),
    gameweek: Optional[str] = Query(None),
    search: Optional[str] = Query(None, max_length=100),
    limit: Optional[str] = Query(None),
    offset: Optional[str] = Query(None),
    season: Optional[str] = Query(None),
):
    """Settled-points leaderboard, global or per league, optionally for one gameweek.

    Public endpoint: returns display names only. Invalid paging values fall
    back to defaults instead of failing the request.
    """
    page_limit, page_offset = parse_pagination(limit, offset)
    return await get_leaderboard(
        league_id=(league_id or "").strip() or None,
        gameweek=effective_gameweek(gameweek),
        search=search,
        offset=page_offset,
        limit=page_limit,
        season=season,
    )
