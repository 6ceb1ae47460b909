"""Tests for the HTTP surface: health, prediction result, settle trigger, user stats."""

from datetime import datetime

import httpx
import pytest

from scoreline import security
from scoreline.jobs.tracking import record_job_run, utc_now
from scoreline.main import app
from scoreline.routes.predictions import get_store

pytestmark = pytest.mark.anyio

API_KEY = "admin-key-789"
AUTHOR = 7


@pytest.fixture
async def client(store, monkeypatch):
    monkeypatch.setattr(security.settings, "API_KEY", API_KEY)
    monkeypatch.setattr(security.limiter, "enabled", False)
    app.dependency_overrides[get_store] = lambda: store
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http
    app.dependency_overrides.clear()


async def _setup(store, status="finished"):
    finished = status == "finished"
    await store.create("matches", {
        "match_id": 1,
        "date": datetime(2024, 1, 10, 15, 0),
        "status": status,
        "home_team": "Arsenal",
        "away_team": "Chelsea",
        "home_score": 2 if finished else None,
        "away_score": 1 if finished else None,
    })
    return await store.create("posts", {
        "title": "Arsenal to win",
        "author_id": AUTHOR,
        "post_type": "prediction",
        "prediction": {
            "match_id": 1,
            "events": [{"event": "П1", "coefficient": 1.8}, {"event": "ТБ 3.5", "coefficient": 2.0}],
        },
    })


class TestHealth:
    async def test_last_success_per_job(self, client, store):
        await record_job_run(store, "match_stats", "ok", utc_now())

        response = await client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["last_success"]["match_stats"] is not None
        assert body["last_success"]["history_backward"] is None


class TestPredictionResult:
    async def test_missing_post(self, client):
        assert (await client.get("/api/predictions/404/result")).status_code == 404

    async def test_regular_post_is_not_a_prediction(self, client, store):
        post = await store.create("posts", {"title": "News", "post_type": "post"})
        assert (await client.get(f"/api/predictions/{post['id']}/result")).status_code == 404

    async def test_pending_result_visibility(self, client, store):
        post = await _setup(store, status="scheduled")
        url = f"/api/predictions/{post['id']}/result"

        assert (await client.get(url)).status_code == 403
        assert (await client.get(url, headers={"X-User-Id": "99"})).status_code == 403

        as_author = await client.get(url, headers={"X-User-Id": str(AUTHOR)})
        assert as_author.status_code == 200
        assert as_author.json()["status"] == "pending"

        as_admin = await client.get(url, headers={"X-API-Key": API_KEY})
        assert as_admin.status_code == 200


class TestSettle:
    async def test_requires_api_key(self, client, store):
        post = await _setup(store)
        url = f"/api/predictions/{post['id']}/settle"

        assert (await client.post(url)).status_code == 401
        assert (await client.post(url, headers={"X-API-Key": "wrong"})).status_code == 403

    async def test_settle_then_public_result(self, client, store):
        post = await _setup(store)

        response = await client.post(f"/api/predictions/{post['id']}/settle", headers={"X-API-Key": API_KEY})

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "settled"
        assert body["match_id"] == 1
        assert body["summary"] == {
            "total": 2, "won": 1, "lost": 1, "undecided": 0,
            "hit_rate": 0.5, "roi": pytest.approx(-0.1),
        }
        assert body["points"] == 1
        assert [d["result"] for d in body["details"]] == ["won", "lost"]

        public = await client.get(f"/api/predictions/{post['id']}/result")
        assert public.status_code == 200
        assert public.json()["status"] == "settled"

    async def test_unfinished_match_stays_pending(self, client, store):
        post = await _setup(store, status="live")

        response = await client.post(f"/api/predictions/{post['id']}/settle", headers={"X-API-Key": API_KEY})

        assert response.status_code == 200
        assert response.json()["status"] == "pending"
        assert await store.count("prediction_stats") == 0


class TestUserStats:
    async def test_aggregate(self, client, store):
        post = await _setup(store)
        await client.post(f"/api/predictions/{post['id']}/settle", headers={"X-API-Key": API_KEY})

        response = await client.get(f"/api/predictions/stats/{AUTHOR}")

        assert response.status_code == 200
        body = response.json()
        assert body["user_id"] == AUTHOR
        assert (body["won"], body["lost"], body["undecided"]) == (1, 1, 0)
        assert body["settled_predictions"] == 1
        assert body["pending_predictions"] == 0
        assert body["points"] == 1
