"""Shared plumbing for the batch scripts.

Single-shot mode runs one iteration and exits 0/1. Loop mode re-runs the
iteration every ``interval`` and only logs a failed iteration. SIGINT/SIGTERM
request a graceful shutdown: the running iteration is cancelled, the caller
flushes progress and disposes the engine. A second signal exits at once.
"""

import asyncio
import logging
import signal
import sys
from contextlib import suppress
from typing import Any, Awaitable, Callable, Optional

from scoreline.config import Settings
from scoreline.etl.livescore import mask_secret
from scoreline.jobs.tracking import record_job_run, utc_now
from scoreline.store import Store

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
BANNER = "=" * 60


class ShutdownRequested(Exception):
    """The running iteration was cancelled by a termination signal."""


def configure_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)


def parse_csv_ints(value: Optional[str]) -> Optional[list[int]]:
    """'1,2, 3' -> [1, 2, 3]; blanks and non-numeric items are dropped."""
    if not value:
        return None
    ids = [int(part) for part in (p.strip() for p in value.split(",")) if part.lstrip("-").isdigit()]
    return ids or None


def check_credentials(settings: Settings) -> bool:
    """Log the masked credential state; False when the sync cannot start."""
    logger.info(
        "[CONFIG] LIVESCORE_KEY=%s LIVESCORE_SECRET=%s API_BASE=%s",
        mask_secret(settings.LIVESCORE_KEY),
        mask_secret(settings.LIVESCORE_SECRET),
        settings.LIVESCORE_API_BASE,
    )
    if not settings.LIVESCORE_KEY or not settings.LIVESCORE_SECRET:
        logger.error("[CONFIG] LIVESCORE_KEY and LIVESCORE_SECRET must be set")
        return False
    return True


def log_summary(title: str, data: dict) -> None:
    logger.info(BANNER)
    logger.info(title)
    logger.info(BANNER)
    for key, value in data.items():
        logger.info("  %s: %s", key, value)
    logger.info(BANNER)


class GracefulShutdown:
    """Signal-driven shutdown flag shared by the loop and the running job."""

    def __init__(self):
        self.event = asyncio.Event()
        self.signals_received = 0

    @property
    def requested(self) -> bool:
        return self.event.is_set()

    def request(self) -> None:
        self.event.set()

    def _handle(self, signum: int) -> None:
        self.signals_received += 1
        if self.signals_received > 1:
            logger.warning("Second signal received, exiting immediately")
            sys.exit(1)
        logger.warning("%s received, finishing current unit of work...", signal.Signals(signum).name)
        self.request()

    def install(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self._handle, sig)
            except NotImplementedError:
                signal.signal(sig, lambda signum, frame: loop.call_soon_threadsafe(self._handle, signum))

    async def wait(self, timeout: float) -> bool:
        """Sleep up to ``timeout`` seconds; True if shutdown was requested meanwhile."""
        try:
            await asyncio.wait_for(self.event.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True


async def run_until_shutdown(work: Awaitable, shutdown: GracefulShutdown) -> Any:
    """Await ``work`` unless shutdown is requested first (then cancel it)."""
    task = asyncio.ensure_future(work)
    stopper = asyncio.ensure_future(shutdown.event.wait())
    try:
        done, _ = await asyncio.wait({task, stopper}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        stopper.cancel()

    if task in done:
        return task.result()

    task.cancel()
    with suppress(asyncio.CancelledError):
        await task
    raise ShutdownRequested("shutdown requested")


async def run_tracked(
    store: Store,
    job_name: str,
    func: Callable[[], Awaitable[dict]],
) -> dict:
    """Run one job iteration and record it in job_runs."""
    started = utc_now()
    try:
        metrics = await func()
    except (ShutdownRequested, asyncio.CancelledError):
        await record_job_run(store, job_name, "interrupted", started)
        raise
    except Exception as e:
        await record_job_run(store, job_name, "error", started, error=str(e))
        raise

    status = "exhausted" if metrics.get("exhausted") else "ok"
    await record_job_run(store, job_name, status, started, metrics=metrics)
    return metrics


async def run_loop(
    iteration: Callable[[], Awaitable[Any]],
    interval_seconds: float,
    shutdown: GracefulShutdown,
) -> int:
    """
    Re-run ``iteration`` every ``interval_seconds`` until shutdown.

    A failing iteration is logged and the loop continues. Returns the number
    of iterations started.
    """
    logger.info("[LOOP] Running every %ds", int(interval_seconds))
    count = 0
    while not shutdown.requested:
        count += 1
        logger.info("[LOOP] === Iteration %d ===", count)
        try:
            await run_until_shutdown(iteration(), shutdown)
        except ShutdownRequested:
            break
        except Exception as e:
            logger.exception("[LOOP] Iteration %d failed: %s", count, e)

        if await shutdown.wait(interval_seconds):
            break

    logger.info("[LOOP] Stopped after %d iteration(s)", count)
    return count


async def run_job(
    iteration: Callable[[], Awaitable[Any]],
    shutdown: GracefulShutdown,
    loop: bool = False,
    interval_ms: int = 0,
) -> int:
    """Script entry point body: one shot or loop mode. Returns the exit code."""
    try:
        if loop:
            await run_loop(iteration, interval_ms / 1000, shutdown)
        else:
            await run_until_shutdown(iteration(), shutdown)
    except ShutdownRequested:
        logger.warning("Interrupted, stopped cleanly")
    except Exception as e:
        logger.exception("Job failed: %s", e)
        return 1
    return 0
