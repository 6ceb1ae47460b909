#!/usr/bin/env python3
"""
Import upcoming/recent matches forward: today (or --startDate) through
start + maxDays - 1, in blocks of ``--days``.

Progress lives in the sync_progress table (job "history_forward") so it
survives ephemeral filesystems.

Usage:
    python scripts/import_matches_forward.py
    python scripts/import_matches_forward.py --loop --interval 600000
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
from scoreline.etl.drivers import run_forward  # noqa: E402
from scoreline.etl.history_sync import HistorySync  # noqa: E402
from scoreline.etl.livescore import LiveScoreClient, get_request_budget_status, set_request_budget  # noqa: E402
from scoreline.jobs.progress import StoreProgressStore  # noqa: E402
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

logger = logging.getLogger("import_matches_forward")

JOB_NAME = "history_forward"


def build_parser() -> argparse.ArgumentParser:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Import LiveScore matches forward from today")
    parser.add_argument("--days", type=int, default=7, help="Block size in days (default: 7)")
    parser.add_argument("--pageSize", type=int, default=settings.SYNC_PAGE_SIZE, help="Matches per API page (default: %(default)s)")
    parser.add_argument("--maxDays", type=int, default=7, help="Horizon in days from the start (default: 7)")
    parser.add_argument("--startDate", type=str, default=None, help="Start date instead of today (YYYY-MM-DD)")
    parser.add_argument("--competitions", type=str, default=None, help="Comma-separated competition ids")
    parser.add_argument("--teams", type=str, default=None, help="Comma-separated team ids")
    parser.add_argument("--no-stats", dest="with_stats", action="store_false", help="Skip per-match stats")
    parser.add_argument("--loop", action="store_true", help="Run continuously")
    parser.add_argument("--interval", type=int, default=600000, help="Loop interval in ms (default: 600000)")
    parser.add_argument("--maxRequests", type=int, default=settings.SYNC_MAX_REQUESTS, help="Request budget per run (default: %(default)s)")
    return parser


async def main() -> int:
    args = build_parser().parse_args()
    configure_logging()
    settings = get_settings()

    if not check_credentials(settings):
        return 1

    await init_db()
    store = SQLStore()
    progress_store = StoreProgressStore(JOB_NAME, store)
    client = LiveScoreClient()
    engine = HistorySync(store, client, progress_store=progress_store, progress=await progress_store.load())

    shutdown = GracefulShutdown()
    shutdown.install()

    async def sync_once() -> dict:
        set_request_budget(args.maxRequests)
        driver = await run_forward(
            engine,
            days=args.days,
            page_size=args.pageSize,
            max_days=args.maxDays,
            start_date=args.startDate,
            competition_ids=parse_csv_ints(args.competitions),
            team_ids=parse_csv_ints(args.teams),
            with_stats=args.with_stats,
        )
        return {**driver.to_dict(), **get_request_budget_status()}

    async def iteration() -> dict:
        metrics = await run_tracked(store, JOB_NAME, sync_once)
        log_summary("FORWARD IMPORT COMPLETE", metrics)
        return metrics

    try:
        return await run_job(iteration, shutdown, loop=args.loop, interval_ms=args.interval)
    finally:
        await engine.save_progress()
        await client.close()
        await close_db()


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
