"""Tests for resumable progress state and its two backends."""

import json
import threading

import pytest

from scoreline.jobs.progress import FileProgressStore, ProgressState, StoreProgressStore

pytestmark = pytest.mark.anyio


class TestProgressState:
    def test_record_counts(self):
        state = ProgressState()
        state.record(1, "created")
        state.record(2, "skipped")
        state.record(3, "failed")

        assert (state.processed, state.created, state.skipped, state.failed) == (3, 1, 1, 1)
        assert state.is_processed(1)
        assert state.is_processed(2)
        # failed records are retried on the next run
        assert not state.is_processed(3)

    def test_dict_round_trip_keeps_ids_and_extra(self):
        state = ProgressState(current_date="2024-01-10", current_page=3, processed_ids={5, 1})
        state.extra["next_block_end"] = "2023-12-31"

        restored = ProgressState.from_dict(json.loads(json.dumps(state.to_dict())))

        assert restored.current_date == "2024-01-10"
        assert restored.current_page == 3
        assert restored.processed_ids == {1, 5}
        assert restored.extra == {"next_block_end": "2023-12-31"}

    def test_from_dict_rejects_non_objects(self):
        with pytest.raises(ValueError):
            ProgressState.from_dict(["not", "a", "dict"])


class TestFileProgressStore:
    async def test_missing_file_is_fresh_state(self, tmp_path):
        state = await FileProgressStore("job", base_dir=str(tmp_path)).load()
        assert state.processed == 0
        assert state.processed_ids == set()

    async def test_save_and_load(self, tmp_path):
        backend = FileProgressStore("history_backward", base_dir=str(tmp_path / "progress"))
        state = ProgressState(current_date="2024-01-10")
        state.record(42, "created")

        await backend.save(state)
        loaded = await backend.load()

        assert (tmp_path / "progress" / "history_backward.json").exists()
        assert not (tmp_path / "progress" / "history_backward.json.tmp").exists()
        assert loaded.current_date == "2024-01-10"
        assert loaded.is_processed(42)

    async def test_corrupt_file_falls_back_to_fresh(self, tmp_path):
        (tmp_path / "job.json").write_text("{not json", encoding="utf-8")

        state = await FileProgressStore("job", base_dir=str(tmp_path)).load()

        assert state.processed == 0

    async def test_reset(self, tmp_path):
        backend = FileProgressStore("job", base_dir=str(tmp_path))
        state = ProgressState()
        state.record(1, "created")
        await backend.save(state)

        await backend.reset()

        assert (await backend.load()).processed == 0

    async def test_file_io_runs_off_the_event_loop(self, tmp_path):
        backend = FileProgressStore("job", base_dir=str(tmp_path))
        loop_thread = threading.get_ident()
        threads = []
        write = backend._write

        def tracking_write(data):
            threads.append(threading.get_ident())
            write(data)

        backend._write = tracking_write
        await backend.save(ProgressState())

        assert threads and threads[0] != loop_thread
        assert (tmp_path / "job.json").exists()


class TestStoreProgressStore:
    async def test_save_creates_then_updates_one_row(self, store):
        backend = StoreProgressStore("history_forward", store)
        state = ProgressState(current_date="2024-02-01")
        await backend.save(state)
        state.current_date = "2024-02-02"
        await backend.save(state)

        assert await store.count("sync_progress") == 1
        loaded = await StoreProgressStore("history_forward", store).load()
        assert loaded.current_date == "2024-02-02"

    async def test_corrupt_row_falls_back_to_fresh(self, store):
        await store.create("sync_progress", {"job": "broken", "state": ["nope"]})

        state = await StoreProgressStore("broken", store).load()

        assert state.processed == 0
