"""
backend/tests/test_providers.py

Purpose:
    Provider adapters: bookmaker choice and h2h extraction for TheOddsAPI,
    football-data.org normalization, and error mapping on bad responses.
"""

from __future__ import annotations

from datetime import date, datetime, timezone

import httpx
import pytest

from oddsleague.config import ConfigurationError
from oddsleague.providers.base import OddsProviderError, ResultProviderError
from oddsleague.providers.football_data import FootballDataProvider, normalize_match
from oddsleague.providers.http_client import CircuitBreaker, ResilientClient
from oddsleague.providers.odds_api import (
    TheOddsAPIProvider,
    bookmaker_label,
    extract_h2h_prices,
    pick_preferred_bookmaker,
)

EVENT = {"id": "evt-1", "home_team": "Arsenal", "away_team": "Chelsea"}


def _bookmaker(key, prices=(2.1, 3.4, 3.5), title=None):
    return {
        "key": key,
        "title": title or key.title(),
        "markets": [{"key": "h2h", "outcomes": [
            {"name": "Chelsea", "price": prices[2]},
            {"name": "Draw", "price": prices[1]},
            {"name": "Arsenal", "price": prices[0]},
        ]}],
    }


def _client(name, handler):
    return ResilientClient(name, max_retries=0, transport=httpx.MockTransport(handler))


def test_pick_preferred_bookmaker_follows_priority_then_first():
    books = [_bookmaker("williamhill"), _bookmaker("skybet"), _bookmaker("bet365")]
    assert pick_preferred_bookmaker(books, ["bet365", "skybet"])["key"] == "bet365"
    assert pick_preferred_bookmaker(books, ["unibet"])["key"] == "williamhill"
    assert pick_preferred_bookmaker([], ["bet365"]) is None
    assert pick_preferred_bookmaker(None) is None


def test_extract_h2h_prices_maps_outcomes_by_team_name():
    assert extract_h2h_prices(EVENT, _bookmaker("bet365")) == {"home": 2.1, "draw": 3.4, "away": 3.5}


def test_extract_h2h_prices_requires_all_three_legs():
    book = _bookmaker("bet365")
    book["markets"][0]["outcomes"] = book["markets"][0]["outcomes"][:2]
    assert extract_h2h_prices(EVENT, book) is None
    assert extract_h2h_prices(EVENT, {"key": "bet365", "markets": [{"key": "totals"}]}) is None
    assert extract_h2h_prices(EVENT, None) is None


def test_bookmaker_label():
    assert bookmaker_label({"key": "bet365", "title": "Bet365"}) == "Bet365"
    assert bookmaker_label({"key": "bet365"}) == "bet365"
    assert bookmaker_label(None) is None


def test_normalize_match_reads_status_and_full_time_score():
    raw = {
        "utcDate": "2025-10-05T15:00:00Z",
        "status": "FINISHED",
        "homeTeam": {"name": "Arsenal FC"},
        "awayTeam": {"name": "Chelsea FC"},
        "score": {"fullTime": {"home": 2, "away": 1}},
    }
    assert normalize_match(raw) == {
        "utc_date": datetime(2025, 10, 5, 15, 0, tzinfo=timezone.utc),
        "home_team": "Arsenal FC",
        "away_team": "Chelsea FC",
        "finished": True,
        "home_score": 2,
        "away_score": 1,
    }


def test_normalize_match_tolerates_missing_score_and_drops_bad_dates():
    live = normalize_match({
        "utcDate": "2025-10-05T15:00:00Z",
        "status": "IN_PLAY",
        "homeTeam": {"name": "Arsenal FC"},
        "awayTeam": {"name": "Chelsea FC"},
        "score": {"fullTime": {"home": None, "away": None}},
    })
    assert live["finished"] is False
    assert (live["home_score"], live["away_score"]) == (None, None)
    assert normalize_match({"status": "FINISHED"}) is None
    assert normalize_match({"utcDate": "not a date"}) is None


@pytest.mark.asyncio
async def test_odds_provider_tracks_usage_on_success():
    def handler(request):
        assert request.url.params["markets"] == "h2h"
        assert request.url.params["apiKey"] == "test-odds-key"
        return httpx.Response(
            200,
            json=[{**EVENT, "bookmakers": [_bookmaker("bet365")]}],
            headers={"x-requests-used": "12", "x-requests-remaining": "488"},
        )

    provider = TheOddsAPIProvider(client=_client("theoddsapi", handler))

    events = await provider.get_events()

    assert [e["id"] for e in events] == ["evt-1"]
    assert provider.api_usage == {"requests_used": 12, "requests_remaining": 488}
    assert provider.circuit_open is False


@pytest.mark.asyncio
async def test_odds_provider_raises_on_client_error():
    reply = lambda request: httpx.Response(401, json={"message": "bad key"})
    provider = TheOddsAPIProvider(client=_client("theoddsapi", reply))

    with pytest.raises(OddsProviderError) as exc:
        await provider.get_events()
    assert exc.value.status_code == 401


@pytest.mark.asyncio
async def test_odds_provider_rejects_non_list_payload():
    reply = lambda request: httpx.Response(200, json={"message": "oops"})
    provider = TheOddsAPIProvider(client=_client("theoddsapi", reply))

    with pytest.raises(OddsProviderError):
        await provider.get_events()


@pytest.mark.asyncio
async def test_odds_provider_requires_api_key(monkeypatch):
    from oddsleague.config import settings

    monkeypatch.setattr(settings, "ODDS_API_KEY", "")
    with pytest.raises(ConfigurationError):
        await TheOddsAPIProvider().get_events()


@pytest.mark.asyncio
async def test_football_data_provider_normalizes_and_sends_token():
    def handler(request):
        assert request.headers["X-Auth-Token"] == "test-fd-key"
        assert request.url.params["dateFrom"] == "2025-10-02"
        assert request.url.params["dateTo"] == "2025-10-06"
        return httpx.Response(200, json={"matches": [
            {
                "utcDate": "2025-10-05T15:00:00Z",
                "status": "FINISHED",
                "homeTeam": {"name": "Arsenal FC"},
                "awayTeam": {"name": "Chelsea FC"},
                "score": {"fullTime": {"home": 2, "away": 1}},
            },
            {"status": "SCHEDULED"},
        ]})

    provider = FootballDataProvider(client=_client("football_data", handler))

    matches = await provider.get_matches(date(2025, 10, 2), date(2025, 10, 6))

    assert len(matches) == 1
    assert matches[0]["finished"] is True


@pytest.mark.asyncio
async def test_football_data_provider_raises_on_http_error():
    reply = lambda request: httpx.Response(403, json={"message": "forbidden"})
    provider = FootballDataProvider(client=_client("football_data", reply))

    with pytest.raises(ResultProviderError) as exc:
        await provider.get_matches(date(2025, 10, 2), date(2025, 10, 6))
    assert exc.value.status_code == 403


@pytest.mark.asyncio
async def test_football_data_provider_stops_calling_once_the_circuit_opens():
    calls = []

    def reply(request):
        calls.append(request)
        return httpx.Response(403)

    client = _client("football_data", reply)
    client.circuit = CircuitBreaker("football_data", failure_threshold=2, recovery_seconds=300)
    provider = FootballDataProvider(client=client)

    for _ in range(3):
        with pytest.raises(ResultProviderError):
            await provider.get_matches(date(2025, 10, 2), date(2025, 10, 6))

    assert len(calls) == 2
