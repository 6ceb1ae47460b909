"""Tests for the batch script plumbing: tracking, loop mode and shutdown."""

import asyncio

import pytest

from scoreline.jobs.runner import (
    GracefulShutdown,
    ShutdownRequested,
    parse_csv_ints,
    run_job,
    run_loop,
    run_tracked,
    run_until_shutdown,
)
from scoreline.jobs.tracking import get_last_success_at

pytestmark = pytest.mark.anyio


class TestParseCsvInts:
    @pytest.mark.parametrize("raw,expected", [
        ("1,2, 3", [1, 2, 3]),
        ("39, abc, ,140", [39, 140]),
        ("", None),
        (None, None),
        ("abc", None),
    ])
    def test_parse(self, raw, expected):
        assert parse_csv_ints(raw) == expected


class TestRunTracked:
    async def test_ok_and_last_success(self, store):
        async def job():
            return {"created": 3}

        assert await run_tracked(store, "history_forward", job) == {"created": 3}

        row = await store.find_one("job_runs", where={"job_name": "history_forward"})
        assert row["status"] == "ok"
        assert row["metrics"] == {"created": 3}
        assert await get_last_success_at(store, "history_forward") == row["finished_at"]

    async def test_exhausted_status(self, store):
        async def job():
            return {"exhausted": True}

        await run_tracked(store, "match_stats", job)

        assert (await store.find_one("job_runs"))["status"] == "exhausted"
        assert await get_last_success_at(store, "match_stats") is None

    async def test_error_is_recorded_and_raised(self, store):
        async def job():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await run_tracked(store, "match_stats", job)

        row = await store.find_one("job_runs")
        assert row["status"] == "error"
        assert row["error_message"] == "boom"

    async def test_interrupted(self, store):
        async def job():
            raise ShutdownRequested("stop")

        with pytest.raises(ShutdownRequested):
            await run_tracked(store, "history_backward", job)

        assert (await store.find_one("job_runs"))["status"] == "interrupted"


class TestRunUntilShutdown:
    async def test_returns_result(self):
        async def work():
            return 42

        assert await run_until_shutdown(work(), GracefulShutdown()) == 42

    async def test_cancels_work_on_shutdown(self):
        shutdown = GracefulShutdown()
        cancelled = asyncio.Event()

        async def work():
            try:
                await asyncio.sleep(60)
            except asyncio.CancelledError:
                cancelled.set()
                raise

        asyncio.get_running_loop().call_later(0.01, shutdown.request)
        with pytest.raises(ShutdownRequested):
            await run_until_shutdown(work(), shutdown)
        assert cancelled.is_set()


class TestRunLoop:
    async def test_failed_iteration_does_not_stop_the_loop(self):
        shutdown = GracefulShutdown()
        calls = []

        async def iteration():
            calls.append(len(calls) + 1)
            if len(calls) == 1:
                raise RuntimeError("first one fails")
            if len(calls) == 3:
                shutdown.request()

        count = await run_loop(iteration, 0, shutdown)

        assert count == 3
        assert calls == [1, 2, 3]

    async def test_requested_before_start(self):
        shutdown = GracefulShutdown()
        shutdown.request()

        async def iteration():
            raise AssertionError("must not run")

        assert await run_loop(iteration, 0, shutdown) == 0


class TestRunJob:
    async def test_exit_codes(self):
        async def ok():
            return {}

        async def failing():
            raise RuntimeError("boom")

        assert await run_job(ok, GracefulShutdown()) == 0
        assert await run_job(failing, GracefulShutdown()) == 1

    async def test_graceful_interrupt_exits_zero(self):
        shutdown = GracefulShutdown()

        async def slow():
            await asyncio.sleep(60)

        asyncio.get_running_loop().call_later(0.01, shutdown.request)
        assert await run_job(slow, shutdown) == 0
