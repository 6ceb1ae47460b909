"""Tests for the league reference sync."""

import pytest

from scoreline.etl.leagues import display_name, normalize_competition, sync_leagues
from tests.helpers import json_response, make_client

pytestmark = pytest.mark.anyio

PREMIER_LEAGUE = {
    "id": "2",
    "name": " Premier League ",
    "is_league": "1",
    "is_cup": "0",
    "tier": 1,
    "has_groups": False,
    "countries": [{"id": "19", "name": "England"}],
    "federations": [{"id": "1", "name": "UEFA"}],
    "season": {"id": 5, "name": "2023/2024", "start": "2023-08-11", "end": "2024-05-19"},
}
CHAMPIONS_LEAGUE = {
    "id": 244,
    "name": "Champions League",
    "is_cup": 1,
    "federations": [{"id": 1, "name": "UEFA"}],
    "active": "0",
}


class TestNormalizeCompetition:
    def test_league_fields(self):
        doc = normalize_competition(PREMIER_LEAGUE)

        assert doc["competition_id"] == 2
        assert doc["name"] == "Premier League"
        assert doc["display_name"] == "Premier League (England)"
        assert doc["country_id"] == 19
        assert doc["is_league"] is True
        assert doc["is_cup"] is False
        assert doc["active"] is True
        assert doc["season"]["start"] == "2023-08-11T00:00:00"

    def test_federation_display_and_inactive(self):
        doc = normalize_competition(CHAMPIONS_LEAGUE)
        assert doc["display_name"] == "Champions League (UEFA)"
        assert doc["country_id"] is None
        assert doc["active"] is False

    def test_national_teams_suffix(self):
        assert display_name("Friendlies", None, [], True) == "Friendlies (national teams)"
        assert display_name("Friendlies", None, [], False) == "Friendlies"

    @pytest.mark.parametrize("raw", [None, {"name": "No id"}, {"id": 3, "name": "  "}, "junk"])
    def test_unusable_payloads(self, raw):
        assert normalize_competition(raw) is None


class TestSyncLeagues:
    async def test_create_then_update(self, store):
        def handler(request):
            return json_response({
                "success": True,
                "data": {"competition": [PREMIER_LEAGUE, CHAMPIONS_LEAGUE, {"name": "broken"}]},
            })

        client = make_client(handler)
        try:
            first = await sync_leagues(store, client)
            second = await sync_leagues(store, client)
        finally:
            await client.close()

        assert (first.fetched, first.created, first.updated, first.skipped) == (3, 2, 0, 1)
        assert (second.created, second.updated) == (0, 2)
        assert await store.count("leagues") == 2

        league = await store.find_one("leagues", where={"competition_id": 2})
        assert league["countries"] == [{"id": 19, "name": "England"}]
        assert league["last_sync_at"] is not None

    async def test_filters_are_forwarded(self, store):
        seen = {}

        def handler(request):
            seen.update(request.url.params)
            return json_response({"success": True, "data": {"competition": [PREMIER_LEAGUE]}})

        client = make_client(handler)
        try:
            await sync_leagues(store, client, country_id=19)
        finally:
            await client.close()

        assert seen["country_id"] == "19"
        assert "federation_id" not in seen
