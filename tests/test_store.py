"""Tests for the SQL-backed document store."""

from datetime import datetime

import pytest
from sqlalchemy import DateTime

from scoreline.models import JobRun, Match
from scoreline.store import DuplicateKeyError, RecordNotFound, StoreError, UnknownCollection

pytestmark = pytest.mark.anyio


async def _match(store, match_id, day, status="finished"):
    return await store.create("matches", {
        "match_id": match_id,
        "date": datetime(2024, 1, day, 15, 0),
        "status": status,
        "home_team": "Home",
        "away_team": "Away",
    })


class TestCreateUpdate:
    async def test_create_returns_document_with_id(self, store):
        doc = await _match(store, 1, 10)
        assert doc["id"] is not None
        assert doc["match_id"] == 1
        assert doc["has_stats"] is False

    async def test_unique_key_violation(self, store):
        await _match(store, 1, 10)
        with pytest.raises(DuplicateKeyError):
            await _match(store, 1, 11)

    async def test_update_changes_only_given_fields(self, store):
        doc = await _match(store, 1, 10)
        updated = await store.update("matches", doc["id"], {"status": "live", "unknown_field": 1})
        assert updated["status"] == "live"
        assert updated["home_team"] == "Home"

    async def test_update_missing_row(self, store):
        with pytest.raises(RecordNotFound):
            await store.update("matches", 999, {"status": "live"})

    async def test_unknown_collection(self, store):
        with pytest.raises(UnknownCollection):
            await store.find("nope")

    async def test_json_columns_round_trip(self, store):
        doc = await store.create("match_stats", {"match_id": 1, "corners": {"home": 5, "away": 2}, "events": []})
        assert doc["corners"] == {"home": 5, "away": 2}
        assert doc["events"] == []

    async def test_naive_utc_datetimes_round_trip(self, store):
        # Every timestamp is written as naive UTC.
        assert type(Match.__table__.c.date.type) is DateTime
        assert type(JobRun.__table__.c.started_at.type) is DateTime

        await _match(store, 1, 10)
        run = await store.create("job_runs", {
            "job_name": "match_stats",
            "status": "ok",
            "started_at": datetime(2024, 1, 10, 15, 0),
            "finished_at": datetime(2024, 1, 10, 15, 1),
        })

        row = await store.find_one("matches", where={"match_id": 1})
        assert row["date"] == datetime(2024, 1, 10, 15, 0)
        assert row["date"].tzinfo is None
        assert run["finished_at"].tzinfo is None


class TestFind:
    async def test_where_operators(self, store):
        for match_id, day, status in [(1, 1, "finished"), (2, 2, "live"), (3, 3, "finished"), (4, 4, "scheduled")]:
            await _match(store, match_id, day, status)

        result = await store.find("matches", where={"status": {"in": ["finished", "live"]}}, sort="-date")
        assert [d["match_id"] for d in result.docs] == [3, 2, 1]

        result = await store.find("matches", where={"date": {"greater_than_equal": datetime(2024, 1, 3)}})
        assert {d["match_id"] for d in result.docs} == {3, 4}

        result = await store.find("matches", where={"or": [{"match_id": 1}, {"match_id": {"equals": 4}}]})
        assert {d["match_id"] for d in result.docs} == {1, 4}

        result = await store.find("matches", where={"fixture_id": {"exists": False}})
        assert result.total_docs == 4

    async def test_paging(self, store):
        for match_id in range(1, 6):
            await _match(store, match_id, match_id)

        page2 = await store.find("matches", sort="match_id", limit=2, page=2)
        assert [d["match_id"] for d in page2.docs] == [3, 4]
        assert page2.total_docs == 5
        assert page2.total_pages == 3
        assert page2.has_next_page is True

        everything = await store.find("matches", limit=None)
        assert len(everything.docs) == 5
        assert everything.has_next_page is False

    async def test_find_one_and_count(self, store):
        await _match(store, 1, 1)
        assert (await store.find_one("matches", where={"match_id": 1}))["match_id"] == 1
        assert await store.find_one("matches", where={"match_id": 2}) is None
        assert await store.count("matches") == 1

    async def test_bad_field_and_operator(self, store):
        with pytest.raises(StoreError):
            await store.find("matches", where={"nope": 1})
        with pytest.raises(StoreError):
            await store.find("matches", where={"match_id": {"like": 1}})
