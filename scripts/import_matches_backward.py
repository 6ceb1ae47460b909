#!/usr/bin/env python3
"""
Import match history backward: walk from the earliest known match toward
today - maxDays, one block of ``--days`` at a time.

Features:
- Idempotent upserts keyed by LiveScore match_id (safe to re-run)
- Request budget (--maxRequests): stops cleanly with exhausted=true
- Resumable: the next block end and processed ids are kept in
  {SYNC_PROGRESS_DIR}/history_backward.json; Ctrl+C saves before exiting
- Loop mode (--loop) re-runs every --interval ms; a failed iteration is logged

Usage:
    # One pass with defaults (30-day blocks, 10y floor)
    python scripts/import_matches_backward.py

    # Restricted to two competitions, without stats
    python scripts/import_matches_backward.py --competitions 2,3 --no-stats

    # Continue where the last run stopped
    python scripts/import_matches_backward.py --resume

    # Daily loop
    python scripts/import_matches_backward.py --loop --interval 86400000
"""

import argparse
import asyncio
import logging
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv

load_dotenv()

from scoreline.config import get_settings  # noqa: E402
from scoreline.database import close_db, init_db  # noqa: E402
from scoreline.etl.drivers import run_backward  # noqa: E402
from scoreline.etl.history_sync import HistorySync  # noqa: E402
from scoreline.etl.livescore import LiveScoreClient, get_request_budget_status, set_request_budget  # noqa: E402
from scoreline.jobs.progress import FileProgressStore, ProgressState  # noqa: E402
from scoreline.jobs.runner import (  # noqa: E402
    GracefulShutdown,
    check_credentials,
    configure_logging,
    log_summary,
    parse_csv_ints,
    run_job,
    run_tracked,
)
from scoreline.store import SQLStore  # noqa: E402

logger = logging.getLogger("import_matches_backward")

JOB_NAME = "history_backward"


def build_parser() -> argparse.ArgumentParser:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Import LiveScore match history backward")
    parser.add_argument("--days", type=int, default=30, help="Block size in days (default: 30)")
    parser.add_argument("--pageSize", type=int, default=settings.SYNC_PAGE_SIZE, help="Matches per API page (default: %(default)s)")
    parser.add_argument("--maxDays", type=int, default=3650, help="Lookback floor in days from today (default: 3650)")
    parser.add_argument("--startDate", type=str, default=None, help="Explicit block end to start from (YYYY-MM-DD)")
    parser.add_argument("--competitions", type=str, default=None, help="Comma-separated competition ids")
    parser.add_argument("--teams", type=str, default=None, help="Comma-separated team ids")
    parser.add_argument("--no-stats", dest="with_stats", action="store_false", help="Skip per-match stats")
    parser.add_argument("--loop", action="store_true", help="Run continuously")
    parser.add_argument("--interval", type=int, default=86400000, help="Loop interval in ms (default: 86400000)")
    parser.add_argument("--maxRequests", type=int, default=settings.SYNC_MAX_REQUESTS, help="Request budget per run (default: %(default)s)")
    parser.add_argument("--resume", action="store_true", help="Continue from the saved progress file")
    return parser


async def main() -> int:
    args = build_parser().parse_args()
    configure_logging()
    settings = get_settings()

    if not check_credentials(settings):
        return 1

    await init_db()
    store = SQLStore()
    progress_store = FileProgressStore(JOB_NAME)
    progress = await progress_store.load() if args.resume else ProgressState()
    client = LiveScoreClient()
    engine = HistorySync(store, client, progress_store=progress_store, progress=progress)

    shutdown = GracefulShutdown()
    shutdown.install()

    async def sync_once() -> dict:
        set_request_budget(args.maxRequests)
        driver = await run_backward(
            engine,
            days=args.days,
            page_size=args.pageSize,
            max_days=args.maxDays,
            start_date=args.startDate,
            competition_ids=parse_csv_ints(args.competitions),
            team_ids=parse_csv_ints(args.teams),
            with_stats=args.with_stats,
            resume=args.resume,
        )
        return {**driver.to_dict(), **get_request_budget_status()}

    async def iteration() -> dict:
        metrics = await run_tracked(store, JOB_NAME, sync_once)
        log_summary("BACKWARD IMPORT COMPLETE", metrics)
        return metrics

    try:
        return await run_job(iteration, shutdown, loop=args.loop, interval_ms=args.interval)
    finally:
        await engine.save_progress()
        logger.info("Progress saved to %s", progress_store.path)
        await client.close()
        await close_db()


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
