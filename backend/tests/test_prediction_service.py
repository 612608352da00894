"""
backend/tests/test_prediction_service.py

Purpose:
    Prediction submission rules (scoreline/pick agreement, kickoff cutoff,
    league membership), odds snapshot at submit time, overwrite before
    settlement and the potential-points preview.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from bson import ObjectId
from fastapi import HTTPException

from fake_mongo import FakeCollection, fake_db
from oddsleague.services import prediction_service as predictions

NOW = datetime(2025, 10, 4, 12, 0, tzinfo=timezone.utc)
UNIQUE = ("user_id", "fixture_id", "league_id")


def _fixture(**overrides):
    doc = {
        "_id": ObjectId(),
        "home_team": "Arsenal",
        "away_team": "Chelsea",
        "kickoff_time": NOW + timedelta(hours=3),
        "status": "scheduled",
        "current_odds": {"home": 2.2, "draw": 3.4, "away": 3.1},
        "locked_odds": None,
        "odds_locked_at": None,
    }
    doc.update(overrides)
    return doc


def _install(monkeypatch, fixture, predictions_docs=None, members=None):
    db = fake_db(
        fixtures=FakeCollection([fixture]),
        predictions=FakeCollection(predictions_docs or [], unique=UNIQUE),
        league_members=FakeCollection(members or []),
    )
    monkeypatch.setattr(predictions._db, "db", db, raising=False)
    return db


@pytest.mark.asyncio
async def test_submit_derives_pick_and_snapshots_current_odds(monkeypatch):
    fixture = _fixture()
    db = _install(monkeypatch, fixture)

    doc = await predictions.submit_prediction("u1", str(fixture["_id"]), 0, 2, now=NOW)

    assert doc["pick"] == "A"
    assert doc["locked_odds"] == 3.1
    assert doc["stake"] == 10
    assert doc["league_id"] is None
    assert doc["points_awarded"] is None
    assert doc["settled_at"] is None
    assert len(db.predictions.docs) == 1


@pytest.mark.asyncio
async def test_submit_prefers_locked_odds(monkeypatch):
    fixture = _fixture(
        locked_odds={"home": 2.0, "draw": 3.6, "away": 3.3, "bookmaker": "Bet365"},
        odds_locked_at=NOW - timedelta(hours=1),
    )
    _install(monkeypatch, fixture)

    doc = await predictions.submit_prediction("u1", str(fixture["_id"]), 1, 1, pick="d", now=NOW)

    assert doc["pick"] == "D"
    assert doc["locked_odds"] == 3.6


@pytest.mark.asyncio
async def test_resubmit_before_kickoff_overwrites(monkeypatch):
    fixture = _fixture()
    db = _install(monkeypatch, fixture)

    await predictions.submit_prediction("u1", str(fixture["_id"]), 2, 0, now=NOW)
    doc = await predictions.submit_prediction("u1", str(fixture["_id"]), 1, 1, now=NOW + timedelta(minutes=5))

    assert len(db.predictions.docs) == 1
    assert (doc["pred_home_goals"], doc["pred_away_goals"], doc["pick"]) == (1, 1, "D")
    assert doc["submitted_at"] == NOW + timedelta(minutes=5)


@pytest.mark.asyncio
async def test_global_and_league_predictions_are_separate(monkeypatch):
    fixture = _fixture()
    db = _install(monkeypatch, fixture, members=[{"league_id": "work", "user_id": "u1"}])

    await predictions.submit_prediction("u1", str(fixture["_id"]), 2, 0, now=NOW)
    await predictions.submit_prediction("u1", str(fixture["_id"]), 0, 0, league_id="work", now=NOW)

    assert sorted(str(d["league_id"]) for d in db.predictions.docs) == ["None", "work"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "home, away, pick, detail",
    [
        (2, 1, "A", "Score must match result (home win / draw / away win)."),
        (1, 1, "H", "Score must match result (home win / draw / away win)."),
        (2, 1, "Z", "Invalid pick. Allowed: H, D, A"),
        (-1, 0, None, "Predicted goals must be non-negative integers."),
        (1.5, 0, None, "Predicted goals must be non-negative integers."),
    ],
)
async def test_submit_rejects_invalid_input(monkeypatch, home, away, pick, detail):
    fixture = _fixture()
    db = _install(monkeypatch, fixture)

    with pytest.raises(HTTPException) as exc:
        await predictions.submit_prediction("u1", str(fixture["_id"]), home, away, pick=pick, now=NOW)

    assert exc.value.status_code == 400
    assert exc.value.detail == detail
    assert db.predictions.docs == []


@pytest.mark.asyncio
async def test_submit_after_kickoff_is_rejected(monkeypatch):
    fixture = _fixture(kickoff_time=NOW)
    _install(monkeypatch, fixture)

    with pytest.raises(HTTPException) as exc:
        await predictions.submit_prediction("u1", str(fixture["_id"]), 1, 0, now=NOW)
    assert exc.value.status_code == 400
    assert "kickoff passed" in exc.value.detail


@pytest.mark.asyncio
async def test_submit_unknown_fixture_is_404(monkeypatch):
    _install(monkeypatch, _fixture())

    for fixture_id in (str(ObjectId()), "garbage"):
        with pytest.raises(HTTPException) as exc:
            await predictions.submit_prediction("u1", fixture_id, 1, 0, now=NOW)
        assert exc.value.status_code == 404


@pytest.mark.asyncio
async def test_submit_to_league_requires_membership(monkeypatch):
    fixture = _fixture()
    db = _install(monkeypatch, fixture, members=[{"league_id": "work", "user_id": "someone-else"}])

    with pytest.raises(HTTPException) as exc:
        await predictions.submit_prediction("u1", str(fixture["_id"]), 1, 0, league_id="work", now=NOW)
    assert exc.value.status_code == 403
    assert db.predictions.docs == []


@pytest.mark.asyncio
async def test_settled_prediction_cannot_be_overwritten(monkeypatch):
    fixture = _fixture()
    settled = {
        "_id": ObjectId(),
        "user_id": "u1",
        "fixture_id": str(fixture["_id"]),
        "league_id": None,
        "pick": "H",
        "pred_home_goals": 1,
        "pred_away_goals": 0,
        "points_awarded": 12.0,
        "settled_at": NOW - timedelta(hours=1),
    }
    db = _install(monkeypatch, fixture, predictions_docs=[settled])

    with pytest.raises(HTTPException) as exc:
        await predictions.submit_prediction("u1", str(fixture["_id"]), 0, 3, now=NOW)

    assert exc.value.status_code == 409
    assert db.predictions.docs[0]["pred_away_goals"] == 0


@pytest.mark.asyncio
async def test_get_user_predictions_filters_scope(monkeypatch):
    fixture = _fixture()
    fid = str(fixture["_id"])
    docs = [
        {"_id": ObjectId(), "user_id": "u1", "fixture_id": fid, "league_id": None},
        {"_id": ObjectId(), "user_id": "u1", "fixture_id": fid, "league_id": "work"},
        {"_id": ObjectId(), "user_id": "u2", "fixture_id": fid, "league_id": None},
    ]
    _install(monkeypatch, fixture, predictions_docs=docs)

    global_rows = await predictions.get_user_predictions("u1", [fid])
    league_rows = await predictions.get_user_predictions("u1", [fid], league_id="work")

    assert [r["league_id"] for r in global_rows] == [None]
    assert [r["league_id"] for r in league_rows] == ["work"]
    assert await predictions.get_user_predictions("u1", []) == []


@pytest.mark.asyncio
async def test_potential_points_uses_current_odds_until_locked(monkeypatch):
    fixture = _fixture(current_odds={"home": 2.5, "draw": None, "away": 3.0})
    _install(monkeypatch, fixture)

    preview = await predictions.potential_points_for_fixture(str(fixture["_id"]))

    assert preview["odds_locked"] is False
    assert preview["stake"] == 10
    assert preview["picks"]["H"] == {"odds": 2.5, "result_points": 15, "exact_score_bonus": 23}
    # Missing price falls back to the default odds of 2.0.
    assert preview["picks"]["D"] == {"odds": None, "result_points": 10, "exact_score_bonus": 15}


@pytest.mark.asyncio
async def test_potential_points_prefers_locked_odds(monkeypatch):
    fixture = _fixture(
        locked_odds={"home": 3.0, "draw": 3.0, "away": 3.0},
        odds_locked_at=NOW - timedelta(hours=2),
    )
    _install(monkeypatch, fixture)

    preview = await predictions.potential_points_for_fixture(str(fixture["_id"]))

    assert preview["odds_locked"] is True
    assert preview["picks"]["A"]["result_points"] == 20
