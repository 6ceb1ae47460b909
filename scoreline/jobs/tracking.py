"""Job run tracking.

Every script run and maintenance tick leaves a ``job_runs`` row so the last
successful run of each job can be looked up after the fact.

Usage:
    from scoreline.jobs.tracking import record_job_run, utc_now

    start = utc_now()
    try:
        # ... job logic ...
        await record_job_run(store, "history_backward", "ok", start, metrics={"created": 5})
    except Exception as e:
        await record_job_run(store, "history_backward", "error", start, error=str(e))
        raise
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from scoreline.store import Store, StoreError

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


async def record_job_run(
    store: Store,
    job_name: str,
    status: str,
    started_at: datetime,
    error: Optional[str] = None,
    metrics: Optional[dict] = None,
) -> None:
    """
    Record a job execution.

    Args:
        store: Data store.
        job_name: Job identifier (history_backward, match_stats, maintenance, ...).
        status: Execution status (ok, error, exhausted, interrupted).
        started_at: When the job started (naive UTC).
        error: Error message if failed.
        metrics: Optional job-specific counters.

    Tracking failures are logged and never fail the job itself.
    """
    finished_at = utc_now()
    duration_ms = int((finished_at - started_at).total_seconds() * 1000)

    try:
        await store.create(
            "job_runs",
            {
                "job_name": job_name,
                "status": status,
                "started_at": started_at,
                "finished_at": finished_at,
                "duration_ms": duration_ms,
                "error_message": error,
                "metrics": metrics,
            },
        )
    except StoreError as e:
        logger.warning("[JOB_TRACKING] Failed to record %s run: %s", job_name, e)
        return

    logger.debug("[JOB_TRACKING] Recorded %s run: %s in %dms", job_name, status, duration_ms)


async def get_last_success_at(store: Store, job_name: str) -> Optional[datetime]:
    """Finish time of the last successful run of a job, or None."""
    row = await store.find_one(
        "job_runs",
        where={"job_name": {"equals": job_name}, "status": {"equals": "ok"}},
        sort="-finished_at",
    )
    return row["finished_at"] if row else None
