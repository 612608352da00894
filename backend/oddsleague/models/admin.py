from typing import Optional

from pydantic import BaseModel


class SettleFixtureRequest(BaseModel):
    """Settle one fixture. Goals are optional when the result is already recorded."""
    fixture_id: str
    home_goals: Optional[int] = None
    away_goals: Optional[int] = None


class SettleGameweekRequest(BaseModel):
    """Settle a gameweek. No gameweek = the gameweek of the latest finished fixture."""
    season: Optional[str] = None
    gameweek: Optional[int] = None


class FixtureScoreUpdate(BaseModel):
    """Live score correction. Does not finish the fixture or settle predictions."""
    fixture_id: str
    home_goals: int
    away_goals: int
