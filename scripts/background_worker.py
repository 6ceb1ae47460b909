#!/usr/bin/env python3
"""
Background maintenance worker.

Runs the maintenance scheduler (comment counters, expired token cleanup)
until SIGINT/SIGTERM, then stops the scheduler and disposes the engine.

Usage:
    python scripts/background_worker.py
    python scripts/background_worker.py --intervalMinutes 1
"""

import argparse
import asyncio
import logging
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv

load_dotenv()

from scoreline.database import close_db, init_db  # noqa: E402
from scoreline.jobs.maintenance import start_maintenance_scheduler, stop_maintenance_scheduler  # noqa: E402
from scoreline.jobs.runner import GracefulShutdown, configure_logging  # noqa: E402
from scoreline.store import SQLStore  # noqa: E402

logger = logging.getLogger("background_worker")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run the maintenance worker")
    parser.add_argument(
        "--intervalMinutes", type=int, default=None,
        help="Tick interval in minutes (default: MAINTENANCE_INTERVAL_MINUTES)",
    )
    return parser


async def main() -> int:
    args = build_parser().parse_args()
    configure_logging()

    await init_db()
    store = SQLStore()

    shutdown = GracefulShutdown()
    shutdown.install()

    start_maintenance_scheduler(store, interval_minutes=args.intervalMinutes)
    logger.info("Background worker running, press Ctrl+C to stop")
    try:
        await shutdown.event.wait()
    finally:
        stop_maintenance_scheduler()
        await close_db()
    logger.info("Background worker stopped")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
