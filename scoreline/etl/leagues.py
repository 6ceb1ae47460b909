"""League reference sync from competitions/list.json."""

import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from scoreline.etl.livescore import LiveScoreClient
from scoreline.etl.normalize import parse_datetime, to_bool, to_int, trim_to_none
from scoreline.store import Store

logger = logging.getLogger(__name__)

NATIONAL_TEAMS_SUFFIX = "national teams"


@dataclass
class LeagueSyncResult:
    fetched: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


def _refs(items: Any) -> list[dict]:
    refs = []
    for item in items if isinstance(items, list) else []:
        if not isinstance(item, dict):
            continue
        ref_id = to_int(item.get("id"))
        if ref_id is None:
            continue
        refs.append({"id": ref_id, "name": trim_to_none(item.get("name"))})
    return refs


def display_name(
    name: str,
    country_name: Optional[str],
    federations: list[dict],
    national_teams_only: bool,
) -> str:
    """'Premier League (England)', 'Champions League (UEFA)', ..."""
    if country_name:
        return f"{name} ({country_name})"
    if federations and federations[0].get("name"):
        return f"{name} ({federations[0]['name']})"
    if national_teams_only:
        return f"{name} ({NATIONAL_TEAMS_SUFFIX})"
    return name


def normalize_competition(raw: Any) -> Optional[dict]:
    """Competition payload -> League document; None without a usable id/name."""
    if not isinstance(raw, dict):
        return None
    competition_id = to_int(raw.get("id"))
    name = trim_to_none(raw.get("name"))
    if competition_id is None or name is None:
        return None

    countries = _refs(raw.get("countries"))
    federations = _refs(raw.get("federations"))
    first_country = countries[0] if countries else None
    national_teams_only = to_bool(raw.get("national_teams_only"))

    season = raw.get("season")
    if isinstance(season, dict):
        start = parse_datetime(season.get("start"))
        end = parse_datetime(season.get("end"))
        season = {
            "id": to_int(season.get("id")),
            "name": trim_to_none(season.get("name")),
            "start": start.isoformat() if start else None,
            "end": end.isoformat() if end else None,
        }
    else:
        season = None

    active = raw.get("active")
    return {
        "competition_id": competition_id,
        "name": name,
        "display_name": display_name(
            name,
            first_country["name"] if first_country else None,
            federations,
            national_teams_only,
        ),
        "country_id": first_country["id"] if first_country else None,
        "country_name": first_country["name"] if first_country else None,
        "is_league": to_bool(raw.get("is_league")),
        "is_cup": to_bool(raw.get("is_cup")),
        "tier": to_int(raw.get("tier")),
        "has_groups": to_bool(raw.get("has_groups")),
        "active": True if active is None else to_bool(active),
        "national_teams_only": national_teams_only,
        "countries": countries,
        "federations": federations,
        "season": season,
    }


async def upsert_league(store: Store, doc: dict) -> str:
    existing = await store.find_one(
        "leagues", where={"competition_id": {"equals": doc["competition_id"]}}
    )
    data = dict(doc)
    data["last_sync_at"] = datetime.now(timezone.utc).replace(tzinfo=None)
    if existing:
        await store.update("leagues", existing["id"], data)
        return "updated"
    await store.create("leagues", data)
    return "created"


async def sync_leagues(
    store: Store,
    client: LiveScoreClient,
    country_id: Optional[int] = None,
    federation_id: Optional[int] = None,
) -> LeagueSyncResult:
    competitions = await client.fetch_competitions(country_id=country_id, federation_id=federation_id)
    result = LeagueSyncResult(fetched=len(competitions))
    logger.info("[LEAGUES] Fetched %d competition(s)", len(competitions))

    for raw in competitions:
        doc = normalize_competition(raw)
        if doc is None:
            result.skipped += 1
            logger.warning("[LEAGUES] Skipping competition without id/name: %s", str(raw)[:120])
            continue
        action = await upsert_league(store, doc)
        if action == "created":
            result.created += 1
        else:
            result.updated += 1
        logger.info("  [LEAGUE] %s %s", doc["display_name"], action.upper())

    logger.info(
        "[LEAGUES] Done: created=%d updated=%d skipped=%d",
        result.created, result.updated, result.skipped,
    )
    return result
