"""
backend/oddsleague/services/scoring_service.py

Purpose:
    Pure scoring rules for a single prediction: outcome derivation, the
    locked -> fallback -> default odds chain, result points and the
    exact-score bonus. Shared by submission validation, settlement and the
    pre-kickoff potential points preview so the three never disagree.

Dependencies:
    - oddsleague.config
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from oddsleague.config import settings

HOME = "H"
DRAW = "D"
AWAY = "A"
PICKS = (HOME, DRAW, AWAY)

EXACT_SCORE_MULTIPLIER = 1.5

# Keys of the {"home", "draw", "away"} odds snapshots stored on fixtures.
PICK_TO_ODDS_KEY = {HOME: "home", DRAW: "draw", AWAY: "away"}

_PICK_ALIASES = {
    "h": HOME, "home": HOME, "home_win": HOME, "homewin": HOME, "1": HOME,
    "d": DRAW, "draw": DRAW, "x": DRAW, "tie": DRAW,
    "a": AWAY, "away": AWAY, "away_win": AWAY, "awaywin": AWAY, "2": AWAY,
}


@dataclass(frozen=True)
class ScoredPrediction:
    points_awarded: int
    bonus_exact_score_points: int
    correct_result: bool
    exact_score: bool

    @property
    def total_points(self) -> int:
        return self.points_awarded + self.bonus_exact_score_points


@dataclass(frozen=True)
class PotentialPoints:
    result_points: int
    exact_score_bonus: int


def normalize_pick(value: Any) -> Optional[str]:
    """Map "H"/"home"/"1"/"X"/"away_win"... onto H, D or A. Unknown input -> None."""
    if value is None:
        return None
    key = str(value).strip().lower().replace("-", "_").replace(" ", "_")
    return _PICK_ALIASES.get(key)


def outcome_from_score(home_goals: int, away_goals: int) -> str:
    """The one outcome derivation used everywhere a scoreline becomes a pick."""
    if home_goals > away_goals:
        return HOME
    if away_goals > home_goals:
        return AWAY
    return DRAW


def odds_for_pick(odds: Mapping[str, Any] | None, pick: str) -> Optional[float]:
    """Price for a pick from a {"home", "draw", "away"} snapshot, None when absent or <= 0."""
    if not odds:
        return None
    key = PICK_TO_ODDS_KEY.get(normalize_pick(pick) or "")
    if key is None:
        return None
    return positive_odds(odds.get(key))


def positive_odds(value: Any) -> Optional[float]:
    try:
        price = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(price) or price <= 0:
        return None
    return price


def round_points(value: float) -> int:
    """Round half up, so 22.5 -> 23 (Python's round() would give 22)."""
    return int(math.floor(value + 0.5))


def effective_odds(
    locked_odds: Any,
    fallback_odds: Any = None,
    default_odds: float | None = None,
) -> float:
    """Locked odds if > 0, else fallback if > 0, else the default (2.0).

    A correct result must never score zero just because the lock job did not
    run for a fixture (rescheduled match, provider outage).
    """
    for candidate in (locked_odds, fallback_odds):
        price = positive_odds(candidate)
        if price is not None:
            return price
    return default_odds if default_odds is not None else settings.DEFAULT_ODDS


def _resolve_stake(stake: Any) -> float:
    try:
        value = float(stake)
    except (TypeError, ValueError):
        return float(settings.DEFAULT_STAKE)
    return value if value > 0 else float(settings.DEFAULT_STAKE)


def _profit(stake: float, odds: float) -> float:
    return stake * odds - stake


def score_prediction(
    prediction: Mapping[str, Any],
    result: Mapping[str, Any],
    fallback_odds: Any = None,
    *,
    default_odds: float | None = None,
) -> ScoredPrediction:
    """Score one prediction against the final result.

    prediction: pick, stake, locked_odds, pred_home_goals, pred_away_goals
    result: home_goals, away_goals
    """
    home_goals = int(result["home_goals"])
    away_goals = int(result["away_goals"])
    actual = outcome_from_score(home_goals, away_goals)

    correct_result = normalize_pick(prediction.get("pick")) == actual
    exact_score = (
        prediction.get("pred_home_goals") == home_goals
        and prediction.get("pred_away_goals") == away_goals
    )

    stake = _resolve_stake(prediction.get("stake"))
    odds = effective_odds(prediction.get("locked_odds"), fallback_odds, default_odds)

    result_points = _profit(stake, odds) if correct_result else 0.0
    bonus = (
        round_points(EXACT_SCORE_MULTIPLIER * result_points)
        if correct_result and exact_score
        else 0
    )

    return ScoredPrediction(
        points_awarded=round_points(result_points),
        bonus_exact_score_points=bonus,
        correct_result=correct_result,
        exact_score=exact_score,
    )


def potential_points(odds: Any, stake: Any = None) -> PotentialPoints:
    """Pre-kickoff preview: what a correct result / exact score would pay at these odds."""
    resolved_stake = _resolve_stake(stake if stake is not None else settings.DEFAULT_STAKE)
    profit = _profit(resolved_stake, effective_odds(odds))
    return PotentialPoints(
        result_points=round_points(profit),
        exact_score_bonus=round_points(EXACT_SCORE_MULTIPLIER * profit),
    )
