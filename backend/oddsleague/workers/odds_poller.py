"""Odds pipeline worker.

One provider fetch per run, shared by the three steps: map new fixtures to
provider events, refresh current odds, lock odds inside the pre-kickoff
window. A failing step is recorded and the next step still runs.
"""

import logging
from datetime import datetime
from typing import Any

from pymongo.errors import PyMongoError

from oddsleague.config import require_setting
from oddsleague.providers.base import BaseOddsProvider, ProviderError
from oddsleague.providers.odds_api import odds_provider
from oddsleague.services.odds_lock_service import OddsLockManager, odds_lock_manager
from oddsleague.services.odds_service import map_odds_events, refresh_current_odds
from oddsleague.utils import utcnow
from oddsleague.workers._state import set_synced

logger = logging.getLogger("oddsleague.odds_poller")

WORKER_ID = "odds_poller"


async def poll_odds(
    provider: BaseOddsProvider | None = None,
    lock_manager: OddsLockManager | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Run map -> refresh -> lock. `ok` is False when any step failed."""
    require_setting("ODDS_API_KEY")
    provider = provider or odds_provider
    lock_manager = lock_manager or odds_lock_manager
    now = now or utcnow()
    result: dict[str, Any] = {"ok": True, "steps": {}, "errors": {}}

    try:
        events = await provider.get_events()
    except ProviderError as exc:
        # Nothing may be written from a failed batch; the next run retries.
        logger.error("Odds pipeline aborted, provider fetch failed: %s", exc)
        result["ok"] = False
        result["errors"]["fetch"] = str(exc)
        await set_synced(WORKER_ID, metrics={"ok": False, "errors": result["errors"]})
        return result

    steps = (
        ("map", lambda: map_odds_events(provider, events=events)),
        ("refresh", lambda: refresh_current_odds(provider, events=events, now=now)),
        ("lock", lambda: lock_manager.lock_upcoming(now=now, events=events)),
    )
    for name, step in steps:
        try:
            result["steps"][name] = await step()
        except (ProviderError, PyMongoError) as exc:
            logger.error("Odds pipeline step %s failed: %s", name, exc)
            result["ok"] = False
            result["errors"][name] = str(exc)

    await set_synced(WORKER_ID, metrics={
        "ok": result["ok"],
        "events": len(events),
        "mapped": result["steps"].get("map", {}).get("mapped", 0),
        "odds_refreshed": result["steps"].get("refresh", {}).get("fixtures_updated", 0),
        "odds_locked": result["steps"].get("lock", {}).get("odds_locked", 0),
    })
    logger.info("Odds pipeline finished (ok=%s, %d events)", result["ok"], len(events))
    return result
