"""LiveScore API client.

Thin wrapper over httpx: signs every GET with key/secret/lang query params,
parses the JSON envelope and paces calls with a fixed sleep. It never retries;
retry policy belongs to the caller (the loop schedule re-runs the job).
"""

import asyncio
import logging
from typing import Any, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import httpx

from scoreline.config import get_settings
from scoreline.etl.errors import (
    ApiError,
    NetworkError,
    ParseError,
    RequestBudgetExhausted,
)

logger = logging.getLogger(__name__)

settings = get_settings()

SECRET_PARAMS = ("key", "secret")


# =============================================================================
# PROCESS REQUEST BUDGET
# =============================================================================
_budget_lock = asyncio.Lock()
_budget_remaining: Optional[int] = None  # None = unlimited
_budget_limit: Optional[int] = None
_requests_made: int = 0


def set_request_budget(limit: Optional[int]) -> None:
    """
    Set the process-wide request budget for this run.

    Anything that is not a positive integer disables the budget.
    """
    global _budget_remaining, _budget_limit, _requests_made
    if limit is not None and int(limit) > 0:
        _budget_limit = int(limit)
        _budget_remaining = int(limit)
    else:
        _budget_limit = None
        _budget_remaining = None
    _requests_made = 0
    logger.info(
        "[BUDGET] Request budget: %s",
        _budget_limit if _budget_limit is not None else "unlimited",
    )


async def _budget_consume() -> None:
    global _budget_remaining, _requests_made
    async with _budget_lock:
        if _budget_remaining is not None:
            if _budget_remaining <= 0:
                raise RequestBudgetExhausted(
                    f"Request budget exhausted: used={_requests_made}, budget={_budget_limit}"
                )
            _budget_remaining -= 1
        _requests_made += 1


def get_request_budget_status() -> dict:
    """Expose current budget status for logging and run summaries."""
    return {
        "budget_total": _budget_limit,
        "budget_used": _requests_made,
        "budget_remaining": _budget_remaining,
    }


# =============================================================================
# SECRET MASKING
# =============================================================================

def mask_secret(value: Optional[str]) -> str:
    """first3***last2 for anything long enough, else just 'set'/'empty'."""
    if not value:
        return "empty"
    if len(value) > 6:
        return f"{value[:3]}***{value[-2:]}"
    return "set"


def mask_url(url: str) -> str:
    """Mask key/secret query params so URLs can be logged."""
    try:
        parts = urlsplit(str(url))
    except ValueError:
        return "<unloggable url>"
    query = []
    for name, value in parse_qsl(parts.query, keep_blank_values=True):
        if name in SECRET_PARAMS and value:
            value = mask_secret(value)
        query.append((name, value))
    return urlunsplit(parts._replace(query=urlencode(query, safe="*")))


# =============================================================================
# PAYLOAD UNWRAPPING
# =============================================================================

def unwrap_list(response: Any, *keys: str) -> list:
    """
    Pull a list out of the API envelope.

    Tries ``data.<key>`` for each key, then ``<key>`` at the top level, then
    ``data.list``. Dict-shaped collections (id -> item) become their values.
    """
    if not isinstance(response, dict):
        return []
    data = response.get("data")
    if not isinstance(data, dict):
        data = {}

    found = None
    for key in keys:
        if data.get(key) is not None:
            found = data[key]
            break
    if found is None:
        for key in keys:
            if response.get(key) is not None:
                found = response[key]
                break
    if found is None:
        found = data.get("list")

    if isinstance(found, dict):
        found = list(found.values())
    return found if isinstance(found, list) else []


def unwrap_data(response: Any) -> dict:
    """Return ``data`` when present, else the envelope itself."""
    if not isinstance(response, dict):
        return {}
    data = response.get("data")
    return data if isinstance(data, dict) else response


def ensure_success(response: Any, context: str) -> None:
    if isinstance(response, dict) and response.get("success") is False:
        error = response.get("error")
        if isinstance(error, dict):
            message = error.get("message")
        else:
            message = error or response.get("message")
        raise ApiError(f"API error ({context}): {message or 'unknown error'}")


class LiveScoreClient:
    """Async client for the LiveScore REST API."""

    def __init__(
        self,
        key: Optional[str] = None,
        secret: Optional[str] = None,
        base_url: Optional[str] = None,
        lang: Optional[str] = None,
        request_delay: Optional[float] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.key = key if key is not None else settings.LIVESCORE_KEY
        self.secret = secret if secret is not None else settings.LIVESCORE_SECRET
        self.base_url = (base_url or settings.LIVESCORE_API_BASE).rstrip("/")
        self.lang = lang if lang is not None else settings.LIVESCORE_LANG
        self.request_delay = (
            settings.DELAY_BETWEEN_REQUESTS if request_delay is None else request_delay
        )
        self.client = httpx.AsyncClient(
            timeout=timeout or settings.LIVESCORE_TIMEOUT_SECONDS,
            transport=transport,
        )

    def _signed_params(self, params: Optional[dict]) -> dict:
        query = {k: v for k, v in (params or {}).items() if v is not None and v != ""}
        if self.lang:
            query["lang"] = self.lang
        if self.key:
            query["key"] = self.key
        if self.secret:
            query["secret"] = self.secret
        return query

    async def fetch_json(self, path: str, params: Optional[dict] = None) -> Any:
        """
        GET ``{base}/{path}`` with signed params and return the parsed body.

        Raises:
            RequestBudgetExhausted: budget spent before the call was made.
            NetworkError: connection failure or HTTP status >= 400.
            ParseError: body is not JSON.
        """
        await _budget_consume()

        url = f"{self.base_url}/{path.lstrip('/')}"
        request = self.client.build_request("GET", url, params=self._signed_params(params))
        shown = mask_url(str(request.url))
        logger.info("[HTTP] -> GET %s", shown)

        try:
            response = await self.client.send(request)
        except httpx.HTTPError as e:
            logger.error("[HTTP] network error for %s: %s", shown, e)
            raise NetworkError(f"Network error: {e}") from e
        finally:
            if self.request_delay > 0:
                await asyncio.sleep(self.request_delay)

        logger.info("[HTTP] <- %s %s", response.status_code, shown)
        if response.status_code >= 400:
            raise NetworkError(
                f"HTTP {response.status_code} for {shown}", status_code=response.status_code
            )

        try:
            return response.json()
        except ValueError as e:
            preview = response.text[:200]
            logger.error("[HTTP] JSON parse error for %s: %s (body=%r)", shown, e, preview)
            raise ParseError(f"JSON parse error: {e}") from e

    async def fetch_matches_history(
        self,
        date_from: str,
        date_to: str,
        page: int = 1,
        size: int = 30,
        competition_ids: Optional[list[int]] = None,
        team_ids: Optional[list[int]] = None,
    ) -> dict:
        params = {
            "from": date_from,
            "to": date_to,
            "page": page,
            "size": size,
        }
        if competition_ids:
            params["competition_id"] = ",".join(str(c) for c in competition_ids)
        if team_ids:
            params["team_id"] = ",".join(str(t) for t in team_ids)
        response = await self.fetch_json("matches/history.json", params)
        ensure_success(response, f"history {date_from}..{date_to} page={page}")
        return response

    async def fetch_match_stats(self, match_id: int) -> dict:
        response = await self.fetch_json("matches/stats.json", {"match_id": match_id})
        ensure_success(response, f"stats match_id={match_id}")
        return response

    async def fetch_competitions(
        self,
        country_id: Optional[int] = None,
        federation_id: Optional[int] = None,
    ) -> list[dict]:
        """Competition reference list; falls back to listing.json when list.json is empty."""
        params = {"country_id": country_id, "federation_id": federation_id}
        response = await self.fetch_json("competitions/list.json", params)
        ensure_success(response, "competitions")
        competitions = unwrap_list(response, "competitions", "competition")
        if competitions:
            return competitions

        logger.info("[HTTP] Empty competitions/list.json, trying competitions/listing.json")
        fallback = await self.fetch_json("competitions/listing.json", params)
        ensure_success(fallback, "competitions listing")
        return unwrap_list(fallback, "competitions", "competition")

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()
