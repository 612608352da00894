"""
backend/tests/test_results_service.py

Purpose:
    Result sync: kickoff-hour plus team-name matching, finished fixtures stay
    final, live scores never change status, and manual score updates.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from bson import ObjectId
from pymongo.errors import PyMongoError

from fake_mongo import FakeCollection, fake_db
from oddsleague.config import ConfigurationError
from oddsleague.services import results_service as results
from oddsleague.services.settlement_service import FixtureNotFoundError, SettlementInvariantError

NOW = datetime(2025, 10, 5, 21, 0, tzinfo=timezone.utc)
KICKOFF = datetime(2025, 10, 5, 15, 0, tzinfo=timezone.utc)


class _StaticResults:
    def __init__(self, matches):
        self.matches = matches
        self.calls = []

    async def get_matches(self, date_from, date_to):
        self.calls.append((date_from, date_to))
        return self.matches


def _fixture(home="Arsenal", away="Chelsea", kickoff=KICKOFF, **overrides):
    doc = {
        "_id": ObjectId(),
        "season": "2025/26",
        "gameweek": 7,
        "home_team": home,
        "away_team": away,
        "kickoff_time": kickoff,
        "status": "scheduled",
        "home_goals": None,
        "away_goals": None,
    }
    doc.update(overrides)
    return doc


def _match(home="Arsenal FC", away="Chelsea FC", kickoff=KICKOFF, finished=True, score=(2, 1)):
    return {
        "utc_date": kickoff,
        "home_team": home,
        "away_team": away,
        "finished": finished,
        "home_score": score[0] if score else None,
        "away_score": score[1] if score else None,
    }


def test_find_fixture_matches_same_kickoff_hour_and_teams():
    fixture = _fixture()
    other = _fixture(home="Liverpool", away="Everton")
    match = _match(kickoff=KICKOFF + timedelta(minutes=30))
    assert results.find_fixture_for_match(match, [other, fixture]) is fixture


def test_find_fixture_rejects_different_hour():
    fixture = _fixture()
    assert results.find_fixture_for_match(_match(kickoff=KICKOFF + timedelta(hours=1)), [fixture]) is None


@pytest.mark.asyncio
async def test_sync_marks_finished_and_records_live_scores(monkeypatch):
    finished = _fixture()
    live_kickoff = NOW - timedelta(minutes=40)
    live = _fixture(home="Liverpool", away="Everton", kickoff=live_kickoff)
    fixtures = FakeCollection([finished, live])
    monkeypatch.setattr(results._db, "db", fake_db(fixtures=fixtures), raising=False)

    provider = _StaticResults([
        _match(),
        _match(home="Liverpool FC", away="Everton FC", kickoff=live_kickoff, finished=False, score=(1, 0)),
        _match(home="Fulham FC", away="Brentford FC"),
    ])
    summary = await results.sync_results(provider=provider, now=NOW)

    assert summary["finished"] == 1
    assert summary["live_scores"] == 1
    assert summary["unmatched"] == 1
    assert summary["date_from"] == "2025-10-02"
    assert summary["date_to"] == "2025-10-06"
    assert (finished["status"], finished["home_goals"], finished["away_goals"]) == ("finished", 2, 1)
    assert (live["status"], live["home_goals"], live["away_goals"]) == ("scheduled", 1, 0)


@pytest.mark.asyncio
async def test_sync_never_rewrites_a_finished_fixture(monkeypatch):
    fixture = _fixture(status="finished", home_goals=3, away_goals=3)
    monkeypatch.setattr(results._db, "db", fake_db(fixtures=FakeCollection([fixture])), raising=False)

    summary = await results.sync_results(
        provider=_StaticResults([_match(finished=False, score=(0, 0))]), now=NOW,
    )

    assert summary["live_scores"] == 0
    assert (fixture["status"], fixture["home_goals"], fixture["away_goals"]) == ("finished", 3, 3)


@pytest.mark.asyncio
async def test_sync_skips_matches_without_a_score(monkeypatch):
    fixtures = FakeCollection([_fixture()])
    monkeypatch.setattr(results._db, "db", fake_db(fixtures=fixtures), raising=False)

    summary = await results.sync_results(provider=_StaticResults([_match(score=None)]), now=NOW)

    assert summary["finished"] == 0
    assert fixtures.update_calls == []


@pytest.mark.asyncio
async def test_sync_counts_failed_writes_and_continues(monkeypatch):
    first = _fixture()
    second = _fixture(home="Liverpool", away="Everton")

    def fail_first(query, _update):
        if query["_id"] == first["_id"]:
            raise PyMongoError("write failed")

    fixtures = FakeCollection([first, second])
    fixtures.before_update = fail_first
    monkeypatch.setattr(results._db, "db", fake_db(fixtures=fixtures), raising=False)

    summary = await results.sync_results(
        provider=_StaticResults([_match(), _match(home="Liverpool", away="Everton")]), now=NOW,
    )

    assert summary["failed"] == 1
    assert summary["finished"] == 1
    assert second["status"] == "finished"


@pytest.mark.asyncio
async def test_sync_requires_football_data_key(monkeypatch):
    monkeypatch.setattr(results.settings, "FOOTBALL_DATA_API_KEY", "")
    provider = _StaticResults([_match()])
    with pytest.raises(ConfigurationError):
        await results.sync_results(provider=provider, now=NOW)
    assert provider.calls == []


@pytest.mark.asyncio
async def test_update_fixture_score_sets_score_only(monkeypatch):
    fixture = _fixture()
    monkeypatch.setattr(results._db, "db", fake_db(fixtures=FakeCollection([fixture])), raising=False)

    out = await results.update_fixture_score(str(fixture["_id"]), 4, 0)

    assert out == {"fixture_id": str(fixture["_id"]), "home_goals": 4, "away_goals": 0}
    assert fixture["status"] == "scheduled"
    assert (fixture["home_goals"], fixture["away_goals"]) == (4, 0)


@pytest.mark.asyncio
async def test_update_fixture_score_validates_goals_and_fixture(monkeypatch):
    monkeypatch.setattr(results._db, "db", fake_db(), raising=False)
    with pytest.raises(SettlementInvariantError):
        await results.update_fixture_score(str(ObjectId()), -1, 0)
    with pytest.raises(SettlementInvariantError):
        await results.update_fixture_score(str(ObjectId()), 1, True)
    with pytest.raises(FixtureNotFoundError):
        await results.update_fixture_score(str(ObjectId()), 1, 0)
    with pytest.raises(FixtureNotFoundError):
        await results.update_fixture_score("not-an-id", 1, 0)
