"""Periodic maintenance worker.

Every MAINTENANCE_INTERVAL_MINUTES (default 5):
- update_comment_counters: recompute upvotes/downvotes/score of each comment
  from its votes and write back the ones that drifted.
- cleanup_expired_tokens: clear email-verification and password-reset tokens
  whose expiry is in the past, TOKEN_CLEANUP_BATCH users at a time.

A module-level shutdown flag is checked before every unit of work so a
SIGTERM stops the worker between two writes, never in the middle of one.
"""

import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from scoreline.config import get_settings
from scoreline.jobs.tracking import record_job_run, utc_now
from scoreline.store import Store, StoreError

logger = logging.getLogger(__name__)

settings = get_settings()

_shutdown_requested = False
_scheduler_started = False
scheduler: Optional[AsyncIOScheduler] = None

TOKEN_FIELDS = (
    ("email_verification_token", "email_verification_expires"),
    ("reset_password_token", "reset_password_expiration"),
)


def request_shutdown() -> None:
    global _shutdown_requested
    _shutdown_requested = True


def reset_shutdown() -> None:
    global _shutdown_requested
    _shutdown_requested = False


def shutdown_requested() -> bool:
    return _shutdown_requested


async def update_comment_counters(store: Store, batch_size: int = 100) -> dict:
    """Reconcile comment vote counters. Returns {checked, updated, interrupted}."""
    votes = await store.find("comment_votes", limit=None)
    tallies: dict[int, dict] = defaultdict(lambda: {"upvotes": 0, "downvotes": 0})
    for vote in votes.docs:
        if vote["value"] > 0:
            tallies[vote["comment_id"]]["upvotes"] += 1
        elif vote["value"] < 0:
            tallies[vote["comment_id"]]["downvotes"] += 1

    checked = updated = 0
    page = 1
    while True:
        result = await store.find("comments", sort="id", limit=batch_size, page=page)
        for comment in result.docs:
            if _shutdown_requested:
                logger.info("[MAINTENANCE] Shutdown requested, stopping comment reconciliation")
                return {"checked": checked, "updated": updated, "interrupted": True}

            checked += 1
            tally = tallies.get(comment["id"], {"upvotes": 0, "downvotes": 0})
            expected = {
                "upvotes": tally["upvotes"],
                "downvotes": tally["downvotes"],
                "score": tally["upvotes"] - tally["downvotes"],
            }
            if any(comment.get(k) != v for k, v in expected.items()):
                await store.update("comments", comment["id"], expected)
                updated += 1
        if not result.has_next_page:
            break
        page += 1

    if updated:
        logger.info("[MAINTENANCE] Comment counters: checked=%d updated=%d", checked, updated)
    return {"checked": checked, "updated": updated, "interrupted": False}


async def cleanup_expired_tokens(
    store: Store,
    batch_size: Optional[int] = None,
    now: Optional[datetime] = None,
) -> dict:
    """Clear expired verification/reset tokens. Returns {cleared, interrupted}."""
    batch_size = batch_size or settings.TOKEN_CLEANUP_BATCH
    now = now or utc_now()
    cleared = 0

    for token_field, expiry_field in TOKEN_FIELDS:
        result = await store.find(
            "users",
            where={
                token_field: {"exists": True},
                expiry_field: {"less_than": now},
            },
            sort="id",
            limit=batch_size,
        )
        for user in result.docs:
            if _shutdown_requested:
                logger.info("[MAINTENANCE] Shutdown requested, stopping token cleanup")
                return {"cleared": cleared, "interrupted": True}
            await store.update("users", user["id"], {token_field: None, expiry_field: None})
            cleared += 1

    if cleared:
        logger.info("[MAINTENANCE] Cleared %d expired token(s)", cleared)
    return {"cleared": cleared, "interrupted": False}


async def run_maintenance(store: Store) -> dict:
    """One maintenance tick; each task is tracked in job_runs on its own."""
    metrics = {}
    for job_name, task in (
        ("update_comment_counters", update_comment_counters),
        ("cleanup_expired_tokens", cleanup_expired_tokens),
    ):
        if _shutdown_requested:
            break
        started = utc_now()
        try:
            metrics[job_name] = await task(store)
        except StoreError as e:
            logger.error("[MAINTENANCE] %s failed: %s", job_name, e)
            await record_job_run(store, job_name, "error", started, error=str(e))
            continue
        await record_job_run(store, job_name, "ok", started, metrics=metrics[job_name])
    return metrics


def start_maintenance_scheduler(store: Store, interval_minutes: Optional[int] = None) -> AsyncIOScheduler:
    """
    Start the maintenance scheduler on the running event loop.

    Uses a module-level flag to prevent duplicate scheduler instances.
    """
    global _scheduler_started, scheduler

    if _scheduler_started and scheduler is not None:
        logger.warning("Maintenance scheduler already started, skipping duplicate initialization")
        return scheduler

    interval = interval_minutes or settings.MAINTENANCE_INTERVAL_MINUTES
    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        run_maintenance,
        trigger=IntervalTrigger(minutes=interval),
        args=[store],
        id="maintenance",
        name=f"Maintenance (every {interval} min)",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        next_run_time=datetime.now(timezone.utc),
    )
    scheduler.start()
    _scheduler_started = True
    logger.info("[MAINTENANCE] Scheduler started, interval=%d min", interval)
    return scheduler


def stop_maintenance_scheduler() -> None:
    """Stop the scheduler; a tick already running finishes its current unit and exits."""
    global _scheduler_started
    request_shutdown()
    if scheduler is not None and scheduler.running:
        scheduler.shutdown(wait=False)
        _scheduler_started = False
        logger.info("[MAINTENANCE] Scheduler stopped")
