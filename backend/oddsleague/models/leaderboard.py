from typing import List, Optional

from pydantic import BaseModel


class LeaderboardEntry(BaseModel):
    rank: int  # position on the full board, before search
    user_id: str
    display_name: str
    total_points: int
    accuracy: int  # correct results
    correct_scores: int  # exact scores


class LeaderboardPage(BaseModel):
    entries: List[LeaderboardEntry]
    total_count: int  # rows matching the search, across all pages
    league_id: Optional[str] = None
    gameweek: Optional[int] = None
    offset: int
    limit: int
    title: str
