#!/usr/bin/env python3
"""
Import statistics for matches that do not have them yet.

Usage:
    # Finished matches of the last 7 days, 50 at most
    python scripts/import_match_stats.py

    # Live matches, every 10 minutes
    python scripts/import_match_stats.py --status live --loop --interval 600000

    # A single match
    python scripts/import_match_stats.py --matchId 123456
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
from scoreline.etl.history_sync import HistorySync  # noqa: E402
from scoreline.etl.livescore import LiveScoreClient, get_request_budget_status, set_request_budget  # noqa: E402
from scoreline.etl.stats_import import STATUS_FILTERS, import_match_stats  # noqa: E402
from scoreline.jobs.runner import (  # noqa: E402
    GracefulShutdown,
    check_credentials,
    configure_logging,
    log_summary,
    run_job,
    run_tracked,
)
from scoreline.store import SQLStore  # noqa: E402

logger = logging.getLogger("import_match_stats")

JOB_NAME = "match_stats"


def build_parser() -> argparse.ArgumentParser:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Import LiveScore match statistics")
    parser.add_argument("--days", type=int, default=7, help="Look back this many days (default: 7)")
    parser.add_argument("--status", choices=sorted(STATUS_FILTERS), default="finished", help="Match status filter")
    parser.add_argument("--limit", type=int, default=50, help="Max matches per run (default: 50)")
    parser.add_argument("--matchId", type=int, default=None, help="Import a single match")
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
    client = LiveScoreClient(request_delay=settings.DELAY_BETWEEN_DOWNLOADS)
    engine = HistorySync(store, client)

    shutdown = GracefulShutdown()
    shutdown.install()

    async def import_once() -> dict:
        set_request_budget(args.maxRequests)
        result = await import_match_stats(
            engine,
            days=args.days,
            status=args.status,
            limit=args.limit,
            match_id=args.matchId,
        )
        return {**result.to_dict(), **get_request_budget_status()}

    async def iteration() -> dict:
        metrics = await run_tracked(store, JOB_NAME, import_once)
        log_summary("STATS IMPORT COMPLETE", metrics)
        return metrics

    try:
        return await run_job(iteration, shutdown, loop=args.loop, interval_ms=args.interval)
    finally:
        await client.close()
        await close_db()


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
