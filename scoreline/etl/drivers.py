"""Date-block drivers for the history sync engine.

Both directions only decide which [from, to] blocks to hand to
HistorySync.process_history_period; fetching and upserting stay in the engine.

backward: starts at (earliest known match date - 1 day) or an explicit start
          date and walks blocks of ``days`` toward today - max_days.
forward:  starts today (or an explicit start date) and walks blocks of
          ``days`` until start + max_days - 1.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from scoreline.etl.history_sync import DateLike, HistorySync, PeriodResult, to_date
from scoreline.store import Store

logger = logging.getLogger(__name__)

NEXT_BLOCK_KEY = "next_block_end"


@dataclass
class DriverResult:
    direction: str
    result: PeriodResult = field(default_factory=PeriodResult)
    blocks: list = field(default_factory=list)  # [(from, to), ...] as ISO dates
    reached_limit: bool = False

    @property
    def exhausted(self) -> bool:
        return self.result.exhausted

    def to_dict(self) -> dict:
        data = self.result.to_dict()
        data["direction"] = self.direction
        data["blocks"] = len(self.blocks)
        data["reached_limit"] = self.reached_limit
        return data


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


async def earliest_match_date(store: Store) -> Optional[date]:
    row = await store.find_one("matches", sort="date")
    return row["date"].date() if row else None


async def run_backward(
    engine: HistorySync,
    days: int = 30,
    page_size: int = 30,
    max_days: int = 3650,
    start_date: Optional[DateLike] = None,
    competition_ids: Optional[list[int]] = None,
    team_ids: Optional[list[int]] = None,
    with_stats: bool = True,
    resume: bool = False,
    today: Optional[date] = None,
) -> DriverResult:
    """Walk history newest -> oldest until the lookback floor or budget exhaustion."""
    days = max(1, int(days))
    today = today or _utc_today()
    min_date = today - timedelta(days=max_days)

    if start_date:
        current = to_date(start_date)
        origin = "explicit start date"
    elif resume and engine.progress is not None and engine.progress.extra.get(NEXT_BLOCK_KEY):
        current = to_date(engine.progress.extra[NEXT_BLOCK_KEY])
        origin = "saved progress"
    else:
        earliest = await earliest_match_date(engine.store)
        if earliest is not None:
            current = earliest - timedelta(days=1)
            origin = f"earliest known match {earliest.isoformat()} - 1 day"
        else:
            current = today
            origin = "today (empty store)"

    logger.info(
        "[BACKWARD] start=%s (%s) floor=%s days=%d page_size=%d",
        current.isoformat(), origin, min_date.isoformat(), days, page_size,
    )

    driver = DriverResult(direction="backward")
    while current >= min_date:
        block_start = max(current - timedelta(days=days - 1), min_date)
        logger.info("[BLOCK] %s .. %s", block_start.isoformat(), current.isoformat())

        block_result = await engine.process_history_period(
            block_start,
            current,
            page_size=page_size,
            competition_ids=competition_ids,
            team_ids=team_ids,
            with_stats=with_stats,
        )
        driver.result.add(block_result)
        driver.blocks.append((block_start.isoformat(), current.isoformat()))

        if block_result.exhausted:
            logger.warning("[BUDGET] Budget exhausted, no further blocks scheduled")
            break

        current = block_start - timedelta(days=1)
        if engine.progress is not None:
            engine.progress.extra[NEXT_BLOCK_KEY] = current.isoformat()
            await engine.save_progress()
    else:
        driver.reached_limit = True
        logger.info("[BACKWARD] Reached lookback floor %s", min_date.isoformat())

    return driver


async def run_forward(
    engine: HistorySync,
    days: int = 7,
    page_size: int = 30,
    max_days: int = 7,
    start_date: Optional[DateLike] = None,
    competition_ids: Optional[list[int]] = None,
    team_ids: Optional[list[int]] = None,
    with_stats: bool = True,
    today: Optional[date] = None,
) -> DriverResult:
    """Walk from today (or start_date) toward the future in blocks of ``days``."""
    days = max(1, int(days))
    start = to_date(start_date) if start_date else (today or _utc_today())
    horizon = start + timedelta(days=max(1, int(max_days)) - 1)

    logger.info(
        "[FORWARD] start=%s horizon=%s days=%d page_size=%d",
        start.isoformat(), horizon.isoformat(), days, page_size,
    )

    driver = DriverResult(direction="forward")
    current = start
    while current <= horizon:
        block_end = min(current + timedelta(days=days - 1), horizon)
        logger.info("[BLOCK] %s .. %s", current.isoformat(), block_end.isoformat())

        block_result = await engine.process_history_period(
            current,
            block_end,
            page_size=page_size,
            competition_ids=competition_ids,
            team_ids=team_ids,
            with_stats=with_stats,
        )
        driver.result.add(block_result)
        driver.blocks.append((current.isoformat(), block_end.isoformat()))

        if block_result.exhausted:
            logger.warning("[BUDGET] Budget exhausted, no further blocks scheduled")
            break
        current = block_end + timedelta(days=1)
    else:
        driver.reached_limit = True

    return driver
