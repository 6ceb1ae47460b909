#!/usr/bin/env python3
"""
Sync the league reference table from the LiveScore competitions list.

Usage:
    python scripts/import_leagues.py
    python scripts/import_leagues.py --countryId 19
    python scripts/import_leagues.py --federationId 1
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
from scoreline.etl.leagues import sync_leagues  # noqa: E402
from scoreline.etl.livescore import LiveScoreClient  # noqa: E402
from scoreline.jobs.runner import (  # noqa: E402
    GracefulShutdown,
    check_credentials,
    configure_logging,
    log_summary,
    run_job,
    run_tracked,
)
from scoreline.store import SQLStore  # noqa: E402

logger = logging.getLogger("import_leagues")

JOB_NAME = "leagues"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Import LiveScore competitions as leagues")
    parser.add_argument("--countryId", type=int, default=None, help="Only competitions of this country")
    parser.add_argument("--federationId", type=int, default=None, help="Only competitions of this federation")
    return parser


async def main() -> int:
    args = build_parser().parse_args()
    configure_logging()
    settings = get_settings()

    if not check_credentials(settings):
        return 1

    await init_db()
    store = SQLStore()
    client = LiveScoreClient()

    shutdown = GracefulShutdown()
    shutdown.install()

    async def sync_once() -> dict:
        result = await sync_leagues(store, client, country_id=args.countryId, federation_id=args.federationId)
        return result.to_dict()

    async def iteration() -> dict:
        metrics = await run_tracked(store, JOB_NAME, sync_once)
        log_summary("LEAGUE IMPORT COMPLETE", metrics)
        return metrics

    try:
        return await run_job(iteration, shutdown)
    finally:
        await client.close()
        await close_db()


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
