from typing import Optional

from fastapi import APIRouter, Depends, Query

from oddsleague.models.prediction import (
    PotentialPointsResponse,
    PredictionCreate,
    PredictionResponse,
)
from oddsleague.services.auth_service import get_current_user_id
from oddsleague.services.prediction_service import (
    get_user_predictions,
    potential_points_for_fixture,
    submit_prediction,
)

router = APIRouter(prefix="/api/predictions", tags=["predictions"])

_MAX_FIXTURES_PER_LOOKUP = 100


def _to_response(doc: dict) -> PredictionResponse:
    return PredictionResponse(id=str(doc["_id"]), **{k: v for k, v in doc.items() if k != "_id"})


@router.post("", response_model=PredictionResponse)
async def create_or_update_prediction(
    body: PredictionCreate, user_id: str = Depends(get_current_user_id),
):
    """Submit a scoreline forecast. Resubmitting before kickoff overwrites it."""
    doc = await submit_prediction(
        user_id=user_id,
        fixture_id=body.fixture_id,
        pred_home_goals=body.pred_home_goals,
        pred_away_goals=body.pred_away_goals,
        pick=body.pick,
        league_id=body.league_id,
    )
    return _to_response(doc)


@router.get("/for-fixtures")
async def predictions_for_fixtures(
    fixture_ids: str = Query("", description="Comma-separated fixture ids"),
    league_id: Optional[str] = Query(None),
    user_id: str = Depends(get_current_user_id),
) -> dict[str, list[PredictionResponse]]:
    """The caller's predictions for the listed fixtures (global scope without league_id)."""
    ids = [f.strip() for f in fixture_ids.split(",") if f.strip()][:_MAX_FIXTURES_PER_LOOKUP]
    docs = await get_user_predictions(user_id, ids, (league_id or "").strip() or None)
    return {"predictions": [_to_response(d) for d in docs]}


@router.get("/potential-points/{fixture_id}", response_model=PotentialPointsResponse)
async def potential_points(fixture_id: str):
    """Points each pick would earn at the fixture's odds, before kickoff."""
    return await potential_points_for_fixture(fixture_id)
