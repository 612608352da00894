from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel


class PredictionCreate(BaseModel):
    """Request body for submitting or updating a prediction."""
    fixture_id: str
    pred_home_goals: int
    pred_away_goals: int
    pick: Optional[str] = None  # optional; must agree with the scoreline
    league_id: Optional[str] = None  # None = global scope


class PredictionResponse(BaseModel):
    """Prediction data returned to the client."""
    id: str
    fixture_id: str
    league_id: Optional[str] = None
    pick: str
    stake: int
    locked_odds: Optional[float] = None
    pred_home_goals: int
    pred_away_goals: int
    points_awarded: Optional[int] = None
    bonus_exact_score_points: Optional[int] = None
    correct_result: Optional[bool] = None
    exact_score: Optional[bool] = None
    settled_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None


class PickPreview(BaseModel):
    odds: Optional[float] = None  # None -> default odds applied
    result_points: int
    exact_score_bonus: int


class PotentialPointsResponse(BaseModel):
    fixture_id: str
    odds_locked: bool
    stake: int
    picks: Dict[str, PickPreview]  # keyed by "H", "D", "A"
