import logging
from typing import Any, Optional

import httpx

from oddsleague.config import require_setting, settings
from oddsleague.providers.base import BaseOddsProvider, OddsProviderError
from oddsleague.providers.http_client import ResilientClient

logger = logging.getLogger("oddsleague.odds_api")

PROVIDER_NAME = "theoddsapi"


def pick_preferred_bookmaker(
    bookmakers: list[dict] | None, preferred: list[str] | None = None,
) -> Optional[dict]:
    """First bookmaker from the priority list, else the first one offered."""
    if not isinstance(bookmakers, list) or not bookmakers:
        return None
    priority = preferred if preferred is not None else settings.preferred_bookmakers
    for pref in priority:
        for bookmaker in bookmakers:
            if str(bookmaker.get("key", "")).lower() == pref:
                return bookmaker
    return bookmakers[0]


def extract_h2h_prices(event: dict, bookmaker: dict | None) -> Optional[dict[str, float]]:
    """Three-way decimal prices {"home", "draw", "away"}, or None when any leg is missing.

    Outcome names follow the provider's own home_team/away_team spelling.
    """
    if not bookmaker:
        return None
    h2h = next(
        (m for m in bookmaker.get("markets") or [] if m.get("key") == "h2h"),
        None,
    )
    if not h2h:
        return None

    home = draw = away = None
    for outcome in h2h.get("outcomes") or []:
        name = outcome.get("name")
        if name == event.get("home_team"):
            home = outcome.get("price")
        elif name == event.get("away_team"):
            away = outcome.get("price")
        elif str(name).lower() == "draw":
            draw = outcome.get("price")

    if home is None or draw is None or away is None:
        return None
    try:
        return {"home": float(home), "draw": float(draw), "away": float(away)}
    except (TypeError, ValueError):
        return None


def bookmaker_label(bookmaker: dict | None) -> Optional[str]:
    if not bookmaker:
        return None
    return bookmaker.get("title") or bookmaker.get("key") or None


class TheOddsAPIProvider(BaseOddsProvider):
    """TheOddsAPI batch h2h odds. No caching: every pass sees the live market."""

    def __init__(self, client: ResilientClient | None = None):
        self._client = client or ResilientClient(PROVIDER_NAME)
        self._api_usage: dict[str, Optional[int]] = {"requests_used": None, "requests_remaining": None}

    def _track_usage_headers(self, resp: httpx.Response) -> None:
        """Extract and store API usage from response headers."""
        used = resp.headers.get("x-requests-used")
        remaining = resp.headers.get("x-requests-remaining")
        if used is not None:
            self._api_usage["requests_used"] = int(used)
        if remaining is not None:
            self._api_usage["requests_remaining"] = int(remaining)

    async def get_events(self) -> list[dict[str, Any]]:
        api_key = require_setting("ODDS_API_KEY")
        sport_key = settings.ODDS_SPORT_KEY

        if not self._client.circuit.can_attempt():
            raise OddsProviderError(PROVIDER_NAME, "circuit open, skipping odds fetch")

        try:
            resp = await self._client.get(
                f"{settings.ODDS_API_BASE_URL}/sports/{sport_key}/odds",
                params={
                    "apiKey": api_key,
                    "regions": settings.ODDS_API_REGION,
                    "markets": "h2h",
                    "oddsFormat": "decimal",
                },
            )
        except httpx.HTTPError as exc:
            self._client.circuit.record_failure()
            raise OddsProviderError(PROVIDER_NAME, f"request failed: {exc}") from exc

        if resp.status_code >= 400:
            self._client.circuit.record_failure()
            raise OddsProviderError(
                PROVIDER_NAME,
                f"odds request for {sport_key} failed with HTTP {resp.status_code}",
                status_code=resp.status_code,
            )

        self._track_usage_headers(resp)
        try:
            events = resp.json()
        except ValueError as exc:
            self._client.circuit.record_failure()
            raise OddsProviderError(PROVIDER_NAME, "response is not valid JSON") from exc
        if not isinstance(events, list):
            self._client.circuit.record_failure()
            raise OddsProviderError(PROVIDER_NAME, "unexpected odds payload shape")

        self._client.circuit.record_success()
        logger.info("Fetched %d %s events from TheOddsAPI", len(events), sport_key)
        return events

    @property
    def api_usage(self) -> dict:
        return self._api_usage

    @property
    def circuit_open(self) -> bool:
        return self._client.circuit.is_open


# Singleton provider instance
odds_provider = TheOddsAPIProvider()
