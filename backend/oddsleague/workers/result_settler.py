"""Result worker: sync final scores, then settle the current gameweek.

Settlement still runs when the sync fails; fixtures finished by an earlier
sync or by an admin are settled either way.
"""

import logging
from datetime import datetime
from typing import Any

from pymongo.errors import PyMongoError

from oddsleague.config import ConfigurationError
from oddsleague.providers.base import BaseResultProvider, ProviderError
from oddsleague.services.results_service import sync_results
from oddsleague.services.settlement_service import SettlementInvariantError, settle_gameweek
from oddsleague.utils import utcnow
from oddsleague.workers._state import set_synced

logger = logging.getLogger("oddsleague.result_settler")

WORKER_ID = "result_settler"


async def sync_and_settle(
    provider: BaseResultProvider | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    now = now or utcnow()
    result: dict[str, Any] = {"ok": True, "sync": None, "settlement": None, "errors": {}}

    try:
        result["sync"] = await sync_results(provider, now=now)
    except (ConfigurationError, ProviderError, PyMongoError) as exc:
        logger.error("Result sync failed: %s", exc)
        result["ok"] = False
        result["errors"]["sync"] = str(exc)

    try:
        result["settlement"] = await settle_gameweek(now=now)
    except SettlementInvariantError as exc:
        # Nothing finished yet this season: not a failure.
        logger.info("Nothing to settle: %s", exc)
        result["settlement"] = {"note": str(exc)}
    except PyMongoError as exc:
        logger.error("Gameweek settlement failed: %s", exc)
        result["ok"] = False
        result["errors"]["settlement"] = str(exc)

    settlement = result["settlement"] or {}
    await set_synced(WORKER_ID, metrics={
        "ok": result["ok"],
        "fixtures_finished": (result["sync"] or {}).get("finished", 0),
        "gameweek": settlement.get("gameweek"),
        "predictions_settled": settlement.get("predictions_settled", 0),
        "predictions_failed": settlement.get("predictions_failed", 0),
    })
    return result
