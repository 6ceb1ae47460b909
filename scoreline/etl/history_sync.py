"""Historical match sync engine.

Walks a date range day by day, pages through matches/history.json for each
day, normalizes every match and upserts it keyed by ``match_id``. Finished
matches optionally get their statistics fetched and upserted as well.

Counting rules:
- created: new match row
- skipped: match already present (updated in place) or deduplicated
- errors: record-level failure (bad record, store error, stats fetch failure)

The process request budget is the cancellation signal: once the client raises
RequestBudgetExhausted the engine stops and reports ``exhausted=True``.
Page-level failures (network, parse, API error) propagate to the caller.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Iterator, Optional, Union

from scoreline.etl.errors import LiveScoreError, RecordError, RequestBudgetExhausted
from scoreline.etl.livescore import LiveScoreClient, unwrap_list
from scoreline.etl.normalize import normalize_match, normalize_stats, stats_summary, to_int
from scoreline.jobs.progress import ProgressState
from scoreline.store import DuplicateKeyError, Store, StoreError

logger = logging.getLogger(__name__)

# Fields that identify a match or are owned by other jobs; never overwritten by a re-sync.
PROTECTED_MATCH_FIELDS = {"match_id", "has_stats", "priority"}

DateLike = Union[str, date, datetime]


@dataclass
class SyncCounters:
    created: int = 0
    skipped: int = 0
    errors: int = 0

    def add(self, other: "SyncCounters") -> None:
        self.created += other.created
        self.skipped += other.skipped
        self.errors += other.errors


@dataclass
class PeriodResult:
    processed: int = 0
    stats: SyncCounters = field(default_factory=SyncCounters)
    exhausted: bool = False

    def add(self, other: "PeriodResult") -> None:
        self.processed += other.processed
        self.stats.add(other.stats)
        self.exhausted = self.exhausted or other.exhausted

    def to_dict(self) -> dict:
        return {
            "processed": self.processed,
            "stats": {
                "created": self.stats.created,
                "skipped": self.stats.skipped,
                "errors": self.stats.errors,
            },
            "exhausted": self.exhausted,
        }


def to_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def iterate_days(date_from: DateLike, date_to: DateLike) -> Iterator[str]:
    """Yield every day in [from, to] as YYYY-MM-DD, oldest first."""
    current = to_date(date_from)
    end = to_date(date_to)
    while current <= end:
        yield current.isoformat()
        current += timedelta(days=1)


class HistorySync:
    """Upserts LiveScore history pages into the store."""

    def __init__(
        self,
        store: Store,
        client: LiveScoreClient,
        progress_store=None,
        progress: Optional[ProgressState] = None,
    ):
        self.store = store
        self.client = client
        self.progress_store = progress_store
        self.progress = progress
        self._league_cache: dict[int, Optional[int]] = {}

    async def save_progress(self) -> None:
        if self.progress_store is not None and self.progress is not None:
            await self.progress_store.save(self.progress)

    async def _resolve_league(self, competition_id: Optional[int]) -> Optional[int]:
        if competition_id is None:
            return None
        if competition_id not in self._league_cache:
            league = await self.store.find_one(
                "leagues", where={"competition_id": {"equals": competition_id}}
            )
            self._league_cache[competition_id] = league["id"] if league else None
        return self._league_cache[competition_id]

    async def upsert_match(self, doc: dict) -> tuple[str, Optional[dict]]:
        """
        Create or update a match keyed by match_id.

        Returns:
            (action, row): action is 'created', 'updated' or 'skipped'
            (lost a create race on the unique key).
        """
        if doc.get("match_id") is None:
            raise RecordError("match has no usable id")

        league_id = await self._resolve_league(doc.get("competition_id"))
        existing = await self.store.find_one(
            "matches", where={"match_id": {"equals": doc["match_id"]}}
        )

        if existing:
            changes = {k: v for k, v in doc.items() if k not in PROTECTED_MATCH_FIELDS}
            if league_id is not None:
                changes["league_id"] = league_id
            row = await self.store.update("matches", existing["id"], changes)
            return "updated", row

        data = dict(doc)
        data["league_id"] = league_id
        try:
            row = await self.store.create("matches", data)
        except DuplicateKeyError:
            logger.info("    [MATCH] %s already exists (unique key), skipping", doc["match_id"])
            return "skipped", None
        return "created", row

    async def upsert_stats(self, stats_doc: dict, match_row_id: Optional[int]) -> str:
        """Create or update MatchStats keyed by match_id; returns 'created' or 'updated'."""
        data = dict(stats_doc)
        data["match_ref"] = match_row_id
        existing = await self.store.find_one(
            "match_stats", where={"match_id": {"equals": stats_doc["match_id"]}}
        )
        if existing:
            await self.store.update("match_stats", existing["id"], data)
            return "updated"
        await self.store.create("match_stats", data)
        return "created"

    async def fetch_and_upsert_stats(self, match_row: dict) -> bool:
        """
        Fetch stats for one match, upsert them and flag the match has_stats.

        Returns False on a record-level failure. Budget exhaustion propagates.
        """
        match_id = match_row["match_id"]
        try:
            response = await self.client.fetch_match_stats(match_id)
            stats_doc = normalize_stats(response, match_id)
            action = await self.upsert_stats(stats_doc, match_row.get("id"))
            await self.store.update("matches", match_row["id"], {"has_stats": True})
        except RequestBudgetExhausted:
            raise
        except (LiveScoreError, StoreError) as e:
            logger.warning("    [STATS] match %s: stats failed: %s", match_id, e)
            return False

        logger.info(
            "    [STATS] match %s %s quality=%s %s",
            match_id, action, stats_doc["data_quality"], stats_summary(stats_doc),
        )
        return True

    async def process_record(self, raw: dict, with_stats: bool = True) -> str:
        """
        Normalize and upsert one raw match.

        Returns 'created', 'skipped' or 'error' (stats fetch failed).
        """
        doc = normalize_match(raw, sync_source="history")
        match_id = doc["match_id"]
        if match_id is None:
            raise RecordError(f"match without id: {str(raw)[:120]}")

        # Finished matches seen in an earlier (interrupted) run are final.
        if self.progress is not None and doc["status"] == "finished" and self.progress.is_processed(match_id):
            return "skipped"

        action, row = await self.upsert_match(doc)
        logger.info(
            "  [MATCH] %s %s - %s (%s) -> %s",
            match_id, doc["home_team"], doc["away_team"], doc["date"].date().isoformat(), action.upper(),
        )

        if with_stats and doc["status"] == "finished" and row:
            if not await self.fetch_and_upsert_stats(row):
                return "error"

        return "created" if action == "created" else "skipped"

    def _track(self, record_id, action: str) -> None:
        if self.progress is not None:
            self.progress.record(record_id, "failed" if action == "error" else action)

    async def process_day(
        self,
        day: str,
        page_size: int = 30,
        competition_ids: Optional[list[int]] = None,
        team_ids: Optional[list[int]] = None,
        with_stats: bool = True,
    ) -> PeriodResult:
        """Page through a single day until an empty, stale or short page."""
        logger.info("[DAY] %s (with_stats=%s)", day, with_stats)
        result = PeriodResult()
        seen_ids: set = set()
        page = 1

        while True:
            try:
                response = await self.client.fetch_matches_history(
                    day, day, page=page, size=page_size,
                    competition_ids=competition_ids, team_ids=team_ids,
                )
            except RequestBudgetExhausted:
                logger.warning("[BUDGET] Request budget exhausted, stopping day=%s page=%d", day, page)
                result.exhausted = True
                return result

            items = unwrap_list(response, "matches", "match")
            if not items:
                logger.info("[PAGE] day=%s page=%d empty, stopping", day, page)
                break

            fresh = []
            for item in items:
                item_id = to_int(item.get("id")) if isinstance(item, dict) else None
                if item_id is not None and item_id in seen_ids:
                    continue
                if item_id is not None:
                    seen_ids.add(item_id)
                fresh.append(item)

            logger.info(
                "[PAGE] day=%s page=%d received=%d fresh=%d duplicates=%d",
                day, page, len(items), len(fresh), len(items) - len(fresh),
            )
            if not fresh:
                logger.info("[PAGE] no fresh matches on page=%d, stopping", page)
                break

            for raw in fresh:
                record_id = to_int(raw.get("id")) if isinstance(raw, dict) else None
                try:
                    action = await self.process_record(raw, with_stats=with_stats)
                except RequestBudgetExhausted:
                    logger.warning("[BUDGET] Request budget exhausted during day=%s", day)
                    result.exhausted = True
                    await self.save_progress()
                    return result
                except (RecordError, StoreError, LiveScoreError) as e:
                    logger.error("  [ERROR] record %s failed: %s", record_id, e)
                    action = "error"

                result.processed += 1
                if action == "created":
                    result.stats.created += 1
                elif action == "error":
                    result.stats.errors += 1
                else:
                    result.stats.skipped += 1
                self._track(record_id, action)
                await self.save_progress()

            if self.progress is not None:
                self.progress.current_date = day
                self.progress.current_page = page
                self.progress.total_pages = max(self.progress.total_pages, page)
                await self.save_progress()

            if len(items) < page_size:
                logger.info("[PAGE] short page (%d < %d), day complete", len(items), page_size)
                break
            page += 1

        return result

    async def process_history_period(
        self,
        date_from: DateLike,
        date_to: DateLike,
        page_size: int = 30,
        competition_ids: Optional[list[int]] = None,
        team_ids: Optional[list[int]] = None,
        with_stats: bool = True,
    ) -> PeriodResult:
        """Sync every day in [date_from, date_to]; stops early when the budget runs out."""
        logger.info("[SYNC] Period %s .. %s", to_date(date_from), to_date(date_to))
        total = PeriodResult()

        for day in iterate_days(date_from, date_to):
            day_result = await self.process_day(
                day,
                page_size=page_size,
                competition_ids=competition_ids,
                team_ids=team_ids,
                with_stats=with_stats,
            )
            total.add(day_result)
            if day_result.exhausted:
                break

        logger.info(
            "[SYNC] Period done: processed=%d created=%d skipped=%d errors=%d exhausted=%s",
            total.processed, total.stats.created, total.stats.skipped, total.stats.errors, total.exhausted,
        )
        return total


async def process_history_period(
    store: Store,
    client: LiveScoreClient,
    date_from: DateLike,
    date_to: DateLike,
    page_size: int = 30,
    competition_ids: Optional[list[int]] = None,
    team_ids: Optional[list[int]] = None,
    with_stats: bool = True,
) -> PeriodResult:
    """Convenience wrapper running a one-off HistorySync without progress tracking."""
    engine = HistorySync(store, client)
    return await engine.process_history_period(
        date_from,
        date_to,
        page_size=page_size,
        competition_ids=competition_ids,
        team_ids=team_ids,
        with_stats=with_stats,
    )
