"""Factories shared by the test modules: fake LiveScore API and documents."""

import json
from datetime import datetime

import httpx

from scoreline.etl.livescore import LiveScoreClient


def make_client(handler) -> LiveScoreClient:
    """LiveScoreClient wired to an httpx.MockTransport handler, no pacing."""
    return LiveScoreClient(
        key="test-key-123",
        secret="test-secret-456",
        base_url="https://api.test/api-client",
        lang="en",
        request_delay=0,
        transport=httpx.MockTransport(handler),
    )


def json_response(payload, status_code: int = 200) -> httpx.Response:
    return httpx.Response(
        status_code,
        content=json.dumps(payload).encode(),
        headers={"Content-Type": "application/json"},
    )


def raw_match(match_id: int, day: str = "2024-01-10", status: str = "finished", score: str = "2 - 1", **extra) -> dict:
    """A LiveScore history item as the API returns it."""
    raw = {
        "id": match_id,
        "fixture_id": match_id + 100000,
        "date": day,
        "scheduled": "15:00",
        "status": status,
        "time": "FT",
        "home": {"id": 10, "name": "Arsenal", "logo": "https://cdn.test/10.png"},
        "away": {"id": 20, "name": "Chelsea", "logo": "https://cdn.test/20.png"},
        "competition": {"id": 2, "name": "Premier League", "is_league": 1, "tier": 1},
        "scores": {"score": score, "ht_score": "1 - 0", "ft_score": score},
    }
    raw.update(extra)
    return raw


class FakeLiveScore:
    """
    In-memory LiveScore API: history pages per day plus per-match stats.

    ``days`` maps 'YYYY-MM-DD' to the raw matches of that day; pages are
    sliced by the request's page/size params.
    """

    def __init__(self, days=None, stats=None):
        self.days = days or {}
        self.stats = stats or {}
        self.requests: list[httpx.Request] = []
        self.fail_paths: dict[str, httpx.Response] = {}

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        for suffix, response in self.fail_paths.items():
            if path.endswith(suffix):
                return response

        params = request.url.params
        if path.endswith("matches/history.json"):
            items = self.days.get(params["from"], [])
            page, size = int(params["page"]), int(params["size"])
            chunk = items[(page - 1) * size:page * size]
            return json_response({"success": True, "data": {"match": chunk}})
        if path.endswith("matches/stats.json"):
            match_id = int(params["match_id"])
            return json_response({"success": True, "data": self.stats.get(match_id, {})})
        return json_response({"success": False, "error": {"message": "not found"}})

    def client(self) -> LiveScoreClient:
        return make_client(self.handler)

    def count(self, suffix: str) -> int:
        return sum(1 for r in self.requests if r.url.path.endswith(suffix))


def finished_match(match_id: int = 1, home: int = 2, away: int = 1, ht=(1, 0), **extra) -> dict:
    """A normalized Match document for evaluator/settlement tests."""
    doc = {
        "match_id": match_id,
        "fixture_id": match_id + 100000,
        "date": datetime(2024, 1, 10, 15, 0),
        "status": "finished",
        "home_team": "Arsenal",
        "away_team": "Chelsea",
        "home_score": home,
        "away_score": away,
        "home_score_halftime": ht[0] if ht else None,
        "away_score_halftime": ht[1] if ht else None,
        "competition": "Premier League",
    }
    doc.update(extra)
    return doc
