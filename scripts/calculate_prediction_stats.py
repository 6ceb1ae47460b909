#!/usr/bin/env python3
"""
Settle prediction posts against finished matches.

Commands:
    all          every prediction post without a settled result (--force to redo)
    by-match     every prediction on one match (--matchId)
    by-post      a single post (--postId)
    by-user      every prediction of one author (--userId)
    recalculate  every prediction post, replacing existing results

Usage:
    python scripts/calculate_prediction_stats.py all
    python scripts/calculate_prediction_stats.py by-match --matchId 123456
    python scripts/calculate_prediction_stats.py all --loop --interval 600000
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
from scoreline.jobs.runner import (  # noqa: E402
    GracefulShutdown,
    configure_logging,
    log_summary,
    run_job,
    run_tracked,
)
from scoreline.predictions.settlement import (  # noqa: E402
    settle_all,
    settle_by_match,
    settle_by_post,
    settle_by_user,
)
from scoreline.store import SQLStore  # noqa: E402

logger = logging.getLogger("calculate_prediction_stats")

JOB_NAME = "prediction_stats"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Settle prediction posts")
    parser.add_argument("--loop", action="store_true", help="Run continuously")
    parser.add_argument("--interval", type=int, default=600000, help="Loop interval in ms (default: 600000)")

    commands = parser.add_subparsers(dest="command", required=True)

    all_cmd = commands.add_parser("all", help="Settle every unsettled prediction")
    all_cmd.add_argument("--force", action="store_true", help="Also re-settle posts that already have results")

    by_match = commands.add_parser("by-match", help="Settle predictions on one match")
    by_match.add_argument("--matchId", type=int, required=True)

    by_post = commands.add_parser("by-post", help="Settle one prediction post")
    by_post.add_argument("--postId", type=int, required=True)

    by_user = commands.add_parser("by-user", help="Settle predictions of one author")
    by_user.add_argument("--userId", type=int, required=True)

    commands.add_parser("recalculate", help="Re-settle every prediction")
    return parser


def build_command(store, args):
    if args.command == "all":
        return lambda: settle_all(store, force=args.force)
    if args.command == "by-match":
        return lambda: settle_by_match(store, args.matchId)
    if args.command == "by-post":
        return lambda: settle_by_post(store, args.postId)
    if args.command == "by-user":
        return lambda: settle_by_user(store, args.userId)
    return lambda: settle_all(store, force=True)


async def main() -> int:
    args = build_parser().parse_args()
    configure_logging()

    await init_db()
    store = SQLStore()
    command = build_command(store, args)

    shutdown = GracefulShutdown()
    shutdown.install()

    async def settle_once() -> dict:
        counters = await command()
        return counters.to_dict()

    async def iteration() -> dict:
        metrics = await run_tracked(store, JOB_NAME, settle_once)
        log_summary(f"SETTLEMENT COMPLETE ({args.command})", metrics)
        return metrics

    try:
        return await run_job(iteration, shutdown, loop=args.loop, interval_ms=args.interval)
    finally:
        await close_db()


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
