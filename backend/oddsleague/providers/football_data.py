"""
backend/oddsleague/providers/football_data.py

Purpose:
    Adapter for football-data.org competition matches, normalized into the
    status/score payload the result sync needs.

Dependencies:
    - oddsleague.providers.http_client
    - oddsleague.config
"""

import logging
from datetime import date
from typing import Any

import httpx

from oddsleague.config import require_setting, settings
from oddsleague.providers.base import BaseResultProvider, ResultProviderError
from oddsleague.providers.http_client import ResilientClient
from oddsleague.utils import parse_utc

logger = logging.getLogger("oddsleague.football_data")

PROVIDER_NAME = "football_data"


def normalize_match(match: dict) -> dict[str, Any] | None:
    """Reduce a football-data.org match to kickoff, teams, finished flag and full-time score."""
    utc_date = match.get("utcDate")
    if not utc_date:
        return None
    try:
        kickoff = parse_utc(utc_date)
    except (TypeError, ValueError):
        return None

    full_time = (match.get("score") or {}).get("fullTime") or {}
    home = full_time.get("home")
    away = full_time.get("away")
    has_score = isinstance(home, int) and isinstance(away, int)

    return {
        "utc_date": kickoff,
        "home_team": (match.get("homeTeam") or {}).get("name") or "",
        "away_team": (match.get("awayTeam") or {}).get("name") or "",
        "finished": str(match.get("status") or "").upper() == "FINISHED",
        "home_score": home if has_score else None,
        "away_score": away if has_score else None,
    }


class FootballDataProvider(BaseResultProvider):
    """football-data.org provider for final scores."""

    def __init__(self, client: ResilientClient | None = None):
        self._client = client or ResilientClient(PROVIDER_NAME)

    async def get_matches(self, date_from: date, date_to: date) -> list[dict[str, Any]]:
        api_key = require_setting("FOOTBALL_DATA_API_KEY")
        competition = settings.FOOTBALL_DATA_COMPETITION
        circuit = self._client.circuit

        if not circuit.can_attempt():
            raise ResultProviderError(PROVIDER_NAME, "circuit open, skipping result fetch")

        try:
            resp = await self._client.get(
                f"{settings.FOOTBALL_DATA_BASE_URL}/competitions/{competition}/matches",
                params={
                    "dateFrom": date_from.strftime("%Y-%m-%d"),
                    "dateTo": date_to.strftime("%Y-%m-%d"),
                },
                headers={"X-Auth-Token": api_key},
            )
        except httpx.HTTPError as exc:
            circuit.record_failure()
            raise ResultProviderError(PROVIDER_NAME, f"request failed: {exc}") from exc

        if resp.status_code >= 400:
            circuit.record_failure()
            raise ResultProviderError(
                PROVIDER_NAME,
                f"matches request for {competition} failed with HTTP {resp.status_code}",
                status_code=resp.status_code,
            )

        try:
            raw = resp.json().get("matches", [])
        except (ValueError, AttributeError) as exc:
            circuit.record_failure()
            raise ResultProviderError(PROVIDER_NAME, "unexpected matches payload") from exc
        circuit.record_success()

        matches = [m for m in (normalize_match(r) for r in raw) if m is not None]
        logger.info(
            "Fetched %d %s matches (%s..%s)",
            len(matches), competition, date_from, date_to,
        )
        return matches


football_data_provider = FootballDataProvider()
