"""Match statistics import job.

Picks matches that do not have statistics yet (``has_stats=False``) within the
last ``days`` days, newest first, and fetches matches/stats.json for each.
A single ``match_id`` bypasses the day/limit filters.
"""

import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from scoreline.etl.errors import RequestBudgetExhausted
from scoreline.etl.history_sync import HistorySync
from scoreline.store import Store

logger = logging.getLogger(__name__)

STATUS_FILTERS = ("finished", "live", "any")


@dataclass
class StatsImportResult:
    processed: int = 0
    updated: int = 0
    errors: int = 0
    exhausted: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


async def pick_matches(
    store: Store,
    days: int = 7,
    status: str = "finished",
    limit: int = 50,
    match_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> list[dict]:
    if match_id is not None:
        match = await store.find_one("matches", where={"match_id": {"equals": int(match_id)}})
        return [match] if match else []

    if status not in STATUS_FILTERS:
        raise ValueError(f"status must be one of {', '.join(STATUS_FILTERS)}")

    now = now or datetime.now(timezone.utc).replace(tzinfo=None)
    since = (now - timedelta(days=int(days))).replace(hour=0, minute=0, second=0, microsecond=0)
    conditions = [
        {"has_stats": {"equals": False}},
        {"date": {"greater_than_equal": since}},
    ]
    if status != "any":
        conditions.append({"status": {"equals": status}})

    result = await store.find("matches", where={"and": conditions}, sort="-date", limit=int(limit))
    return result.docs


async def import_match_stats(
    engine: HistorySync,
    days: int = 7,
    status: str = "finished",
    limit: int = 50,
    match_id: Optional[int] = None,
) -> StatsImportResult:
    """Fetch and upsert stats for the selected matches."""
    matches = await pick_matches(engine.store, days=days, status=status, limit=limit, match_id=match_id)
    logger.info("[STATS] %d match(es) to process", len(matches))

    result = StatsImportResult()
    for index, match in enumerate(matches, start=1):
        logger.info(
            "  [%d/%d] match_id=%s %s - %s",
            index, len(matches), match["match_id"], match.get("home_team"), match.get("away_team"),
        )
        try:
            ok = await engine.fetch_and_upsert_stats(match)
        except RequestBudgetExhausted:
            logger.warning("[BUDGET] Request budget exhausted after %d match(es)", result.processed)
            result.exhausted = True
            break

        result.processed += 1
        if ok:
            result.updated += 1
        else:
            result.errors += 1

    logger.info(
        "[STATS] Done: processed=%d updated=%d errors=%d exhausted=%s",
        result.processed, result.updated, result.errors, result.exhausted,
    )
    return result
