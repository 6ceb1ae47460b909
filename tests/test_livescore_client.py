"""Tests for the LiveScore HTTP client: signing, masking, errors, budget."""

import httpx
import pytest

from scoreline.etl.errors import ApiError, NetworkError, ParseError, RequestBudgetExhausted
from scoreline.etl.livescore import (
    get_request_budget_status,
    mask_secret,
    mask_url,
    set_request_budget,
    unwrap_data,
    unwrap_list,
)
from tests.helpers import json_response, make_client

pytestmark = pytest.mark.anyio


class TestMasking:
    def test_mask_secret_long_value(self):
        assert mask_secret("abcdefghij") == "abc***ij"

    def test_mask_secret_short_and_empty(self):
        assert mask_secret("abc") == "set"
        assert mask_secret("") == "empty"
        assert mask_secret(None) == "empty"

    def test_mask_url_hides_key_and_secret(self):
        url = "https://api.test/matches/history.json?key=supersecretkey&secret=anothersecret&page=2"
        masked = mask_url(url)
        assert "supersecretkey" not in masked
        assert "anothersecret" not in masked
        assert "sup***ey" in masked
        assert "page=2" in masked

    def test_mask_url_uses_the_same_rule_for_short_values(self):
        masked = mask_url("https://api.test/x.json?key=abcdef&secret=abcdefghij")
        assert "key=abcdef" not in masked
        assert "key=set" in masked
        assert "secret=abc***ij" in masked


class TestUnwrap:
    def test_list_under_data(self):
        assert unwrap_list({"data": {"match": [{"id": 1}]}}, "matches", "match") == [{"id": 1}]

    def test_list_at_top_level(self):
        assert unwrap_list({"matches": [{"id": 2}]}, "matches", "match") == [{"id": 2}]

    def test_dict_collection_becomes_values(self):
        response = {"data": {"competition": {"a": {"id": 1}, "b": {"id": 2}}}}
        assert unwrap_list(response, "competitions", "competition") == [{"id": 1}, {"id": 2}]

    def test_garbage_is_empty(self):
        assert unwrap_list(None, "matches") == []
        assert unwrap_list({"data": "nope"}, "matches") == []

    def test_unwrap_data_falls_back_to_envelope(self):
        assert unwrap_data({"data": {"x": 1}}) == {"x": 1}
        assert unwrap_data({"x": 1}) == {"x": 1}


class TestFetchJson:
    async def test_signs_request_with_key_secret_lang(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["params"] = dict(request.url.params)
            seen["path"] = request.url.path
            return json_response({"success": True, "data": {"match": []}})

        client = make_client(handler)
        try:
            await client.fetch_matches_history("2024-01-10", "2024-01-10", page=2, size=30, competition_ids=[2, 3])
        finally:
            await client.close()

        assert seen["path"].endswith("/matches/history.json")
        assert seen["params"]["key"] == "test-key-123"
        assert seen["params"]["secret"] == "test-secret-456"
        assert seen["params"]["lang"] == "en"
        assert seen["params"]["page"] == "2"
        assert seen["params"]["competition_id"] == "2,3"

    async def test_http_error_raises_network_error(self):
        client = make_client(lambda request: httpx.Response(500, text="boom"))
        try:
            with pytest.raises(NetworkError) as exc_info:
                await client.fetch_json("matches/history.json")
        finally:
            await client.close()
        assert exc_info.value.status_code == 500

    async def test_transport_failure_raises_network_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = make_client(handler)
        try:
            with pytest.raises(NetworkError):
                await client.fetch_json("matches/history.json")
        finally:
            await client.close()

    async def test_invalid_json_raises_parse_error(self):
        client = make_client(lambda request: httpx.Response(200, text="<html>oops</html>"))
        try:
            with pytest.raises(ParseError):
                await client.fetch_json("matches/history.json")
        finally:
            await client.close()

    async def test_success_false_raises_api_error(self):
        client = make_client(
            lambda request: json_response({"success": False, "error": {"message": "Invalid key"}})
        )
        try:
            with pytest.raises(ApiError, match="Invalid key"):
                await client.fetch_match_stats(1)
        finally:
            await client.close()


class TestCompetitions:
    async def test_falls_back_to_listing_when_list_is_empty(self):
        paths = []

        def handler(request):
            paths.append(request.url.path)
            if request.url.path.endswith("competitions/list.json"):
                return json_response({"success": True, "data": {"competition": []}})
            return json_response({"success": True, "data": {"competition": [{"id": 2, "name": "Premier League"}]}})

        client = make_client(handler)
        try:
            competitions = await client.fetch_competitions(country_id=19)
        finally:
            await client.close()

        assert competitions == [{"id": 2, "name": "Premier League"}]
        assert paths[0].endswith("competitions/list.json")
        assert paths[1].endswith("competitions/listing.json")


class TestRequestBudget:
    async def test_budget_counts_calls_and_stops(self):
        calls = []

        def handler(request):
            calls.append(request)
            return json_response({"success": True, "data": {}})

        set_request_budget(2)
        client = make_client(handler)
        try:
            await client.fetch_json("a")
            await client.fetch_json("b")
            with pytest.raises(RequestBudgetExhausted):
                await client.fetch_json("c")
        finally:
            await client.close()

        assert len(calls) == 2
        status = get_request_budget_status()
        assert status["budget_total"] == 2
        assert status["budget_used"] == 2
        assert status["budget_remaining"] == 0

    def test_non_positive_budget_is_unlimited(self):
        set_request_budget(0)
        assert get_request_budget_status()["budget_total"] is None
        assert get_request_budget_status()["budget_remaining"] is None
