"""Persistent worker state: last run time and metrics per job.

Stored in the lightweight `worker_state` collection so operators can see
when each job last completed and what it did.
"""

from datetime import datetime
from typing import Any

import oddsleague.database as _db
from oddsleague.utils import utcnow


async def get_synced_at(worker_id: str) -> datetime | None:
    """Get the last synced_at timestamp for a worker."""
    doc = await _db.db.worker_state.find_one({"_id": worker_id})
    return doc["synced_at"] if doc else None


async def set_synced(worker_id: str, metrics: dict[str, Any] | None = None) -> None:
    """Mark a worker as just run, storing its summary."""
    update: dict[str, Any] = {"synced_at": utcnow()}
    if metrics is not None:
        update["last_metrics"] = metrics
    await _db.db.worker_state.update_one(
        {"_id": worker_id},
        {"$set": update},
        upsert=True,
    )
