"""Pure transforms from LiveScore payloads to canonical match/stats documents.

Nothing in here raises on bad input: numbers coerce to ``None`` when they
cannot be parsed, enums fall back to a fixed value, and optional nested
objects are ``None`` (never missing keys).
"""

import math
import re
from datetime import datetime, timezone
from typing import Any, Optional

MATCH_STATUSES = (
    "scheduled", "live", "halftime", "finished", "cancelled", "postponed", "suspended",
)
MATCH_PERIODS = (
    "not_started", "first_half", "halftime", "second_half", "extra_time", "penalties", "finished",
)
EVENT_TYPES = (
    "goal", "own_goal", "penalty", "yellow_card", "red_card", "substitution", "var", "other",
)
DATA_QUALITY_LEVELS = ("complete", "partial", "minimal", "none")

# Scores are only trusted once the match has kicked off.
SCORED_STATUSES = {"live", "halftime", "finished"}

STATUS_MAP = {
    "scheduled": "scheduled",
    "live": "live",
    "halftime": "halftime",
    "finished": "finished",
    "ft": "finished",
    "cancelled": "cancelled",
    "postponed": "postponed",
    "suspended": "suspended",
    "abandoned": "cancelled",
    "awarded": "finished",
    "not_started": "scheduled",
    "first_half": "live",
    "second_half": "live",
    "extra_time": "live",
    "penalties": "live",
    "in_play": "live",
    "added_time": "live",
    "half_time_break": "halftime",
    "ht": "halftime",
    "aet": "finished",
}

PERIOD_MAP = {
    "not_started": "not_started",
    "first_half": "first_half",
    "halftime": "halftime",
    "second_half": "second_half",
    "extra_time": "extra_time",
    "penalties": "penalties",
    "finished": "finished",
    "ft": "finished",
}

EVENT_TYPE_MAP = {
    "goal": "goal",
    "own_goal": "own_goal",
    "penalty": "penalty",
    "goal_penalty": "penalty",
    "yellow_card": "yellow_card",
    "red_card": "red_card",
    "yellow_red_card": "red_card",
    "substitution": "substitution",
    "var": "var",
    "booking": "yellow_card",
    "red_booking": "red_card",
    "subst": "substitution",
}

# Canonical stats field -> LiveScore stats key
STAT_FIELDS = {
    "possession": "possession",
    "shots": "shots",
    "shots_on_target": "shots_on_target",
    "shots_off_target": "shots_off_target",
    "shots_blocked": "shots_blocked",
    "corners": "corners",
    "offsides": "offsides",
    "fouls": "fouls",
    "yellow_cards": "yellow_cards",
    "red_cards": "red_cards",
    "saves": "saves",
    "passes": "passes",
    "passes_accurate": "passes_accurate",
    "pass_accuracy": "pass_accuracy",
    "attacks": "attacks",
    "dangerous_attacks": "dangerous_attacks",
}

# "11:7" strings at the top level of the stats payload; some keys come misspelled
PAIR_STRING_KEYS = {
    "possession": ("possession", "possesion"),
    "corners": ("corners",),
    "offsides": ("offsides",),
    "fouls": ("fouls", "fauls"),
    "yellow_cards": ("yellow_cards",),
    "red_cards": ("red_cards",),
    "saves": ("saves",),
    "attacks": ("attacks",),
    "dangerous_attacks": ("dangerous_attacks",),
    "shots_on_target": ("shots_on_target",),
    "shots_off_target": ("shots_off_target",),
    "shots_blocked": ("shots_blocked",),
}

DEFAULT_HOME_NAME = "Home team"
DEFAULT_AWAY_NAME = "Away team"
DEFAULT_COMPETITION = "Unknown competition"

_LEADING_INT = re.compile(r"^\s*(\d+)")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ---------------------------------------------------------------------------
# Scalar coercion
# ---------------------------------------------------------------------------

def to_number(value: Any) -> Optional[float]:
    """Coerce to a finite number, else None. Integral values come back as int."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip().rstrip("%").replace(",", ".")
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    if not math.isfinite(number):
        return None
    return int(number) if number.is_integer() else number


def to_int(value: Any) -> Optional[int]:
    number = to_number(value)
    if number is None or not float(number).is_integer():
        return None
    return int(number)


def parse_minute(value: Any) -> Optional[int]:
    """'45+', '90+3' and plain numbers -> leading integer minute."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return to_int(value)
    match = _LEADING_INT.match(str(value))
    return int(match.group(1)) if match else None


def trim_to_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def to_bool(value: Any) -> bool:
    return value is True or value == 1 or value == "1" or value == "true"


def parse_datetime(value: Any) -> Optional[datetime]:
    """ISO-ish timestamps ('2024-01-10', '2024-01-10 15:00:00', ...) -> naive UTC."""
    if isinstance(value, datetime):
        parsed = value
    else:
        text = trim_to_none(value)
        if text is None:
            return None
        try:
            parsed = datetime.fromisoformat(text.replace(" ", "T", 1).replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_score_str(value: Any) -> tuple[Optional[int], Optional[int]]:
    """'2 - 1' -> (2, 1); anything else -> (None, None)."""
    if not isinstance(value, str) or not value:
        return None, None
    parts = [p.strip() for p in value.split("-")]
    if len(parts) != 2:
        return None, None
    return to_int(parts[0]), to_int(parts[1])


def parse_pair(value: Any) -> dict:
    """'11:7' -> {'home': 11, 'away': 7}."""
    if value is None:
        return {"home": None, "away": None}
    parts = [p.strip() for p in str(value).strip().split(":")]
    if len(parts) != 2:
        return {"home": None, "away": None}
    return {"home": to_number(parts[0]), "away": to_number(parts[1])}


def map_side(value: Any) -> dict:
    if not isinstance(value, dict):
        return {"home": None, "away": None}
    return {"home": to_number(value.get("home")), "away": to_number(value.get("away"))}


def has_values(pair: Any) -> bool:
    return isinstance(pair, dict) and (pair.get("home") is not None or pair.get("away") is not None)


def sum_pairs(*pairs: Any) -> dict:
    home = away = None
    for pair in pairs:
        if not isinstance(pair, dict):
            continue
        if pair.get("home") is not None:
            home = (home or 0) + pair["home"]
        if pair.get("away") is not None:
            away = (away or 0) + pair["away"]
    return {"home": home, "away": away}


def map_odds(value: Any) -> dict:
    """Accepts {'1','X','2'} or {home, draw, away} keyed odds."""
    if not isinstance(value, dict):
        return {"home": None, "draw": None, "away": None}

    def pick(primary: str, fallback: str) -> Optional[float]:
        if value.get(primary) is not None:
            return to_number(value.get(primary))
        return to_number(value.get(fallback))

    return {"home": pick("1", "home"), "draw": pick("X", "draw"), "away": pick("2", "away")}


# ---------------------------------------------------------------------------
# Enum transforms
# ---------------------------------------------------------------------------

def _enum_key(value: Any) -> str:
    return str(value or "").strip().lower().replace(" ", "_").replace("-", "_")


def transform_match_status(value: Any) -> str:
    return STATUS_MAP.get(_enum_key(value), "scheduled")


def transform_match_period(value: Any) -> Optional[str]:
    if not value:
        return None
    return PERIOD_MAP.get(_enum_key(value))


def transform_event_type(value: Any) -> str:
    return EVENT_TYPE_MAP.get(_enum_key(value), "other")


def transform_event_team(value: Any) -> str:
    key = _enum_key(value)
    if key in ("away", "a"):
        return "away"
    return "home"


# ---------------------------------------------------------------------------
# Matches
# ---------------------------------------------------------------------------

def _side(raw: dict, *keys: str) -> dict:
    for key in keys:
        value = raw.get(key)
        if isinstance(value, dict):
            return value
    return {}


def _first_int(*values: Any) -> Optional[int]:
    for value in values:
        number = to_int(value)
        if number is not None:
            return number
    return None


def _kickoff(raw: dict) -> datetime:
    kickoff = parse_datetime(raw.get("date"))
    if kickoff is None:
        return _utc_now()
    scheduled = trim_to_none(raw.get("scheduled"))
    if kickoff.hour == 0 and kickoff.minute == 0 and scheduled and re.match(r"^\d{1,2}:\d{2}$", scheduled):
        hour, minute = (int(p) for p in scheduled.split(":"))
        if hour < 24 and minute < 60:
            kickoff = kickoff.replace(hour=hour, minute=minute)
    return kickoff


def _venue(raw: dict, home: dict, away: dict, country: Optional[dict]) -> Optional[dict]:
    venue = raw.get("venue")
    if isinstance(venue, dict):
        return {
            "name": trim_to_none(venue.get("name")),
            "city": trim_to_none(venue.get("city")),
            "country": trim_to_none(venue.get("country")),
        }
    name = trim_to_none(home.get("stadium")) or trim_to_none(away.get("stadium"))
    location = trim_to_none(raw.get("location"))
    country_name = trim_to_none(country.get("name")) if country else None
    if name or location or country_name:
        return {"name": name or location, "city": None, "country": country_name}
    return None


def _referee(value: Any) -> Optional[dict]:
    if isinstance(value, dict):
        return {"id": to_int(value.get("id")), "name": trim_to_none(value.get("name"))}
    name = trim_to_none(value)
    return {"id": None, "name": name} if name else None


def normalize_match(raw: Any, sync_source: str = "history") -> dict:
    """Map one LiveScore match object to a canonical Match document."""
    if not isinstance(raw, dict):
        raw = {}

    home = _side(raw, "home", "home_team", "homeTeam")
    away = _side(raw, "away", "away_team", "awayTeam")
    scores = raw.get("scores") if isinstance(raw.get("scores"), dict) else {}
    score_obj = raw.get("score") if isinstance(raw.get("score"), dict) else {}
    comp = _side(raw, "competition", "league")
    country_raw = raw.get("country") if isinstance(raw.get("country"), dict) else None
    federation_raw = raw.get("federation") if isinstance(raw.get("federation"), dict) else None
    season_raw = raw.get("season") if isinstance(raw.get("season"), dict) else None
    outcomes_raw = raw.get("outcomes") if isinstance(raw.get("outcomes"), dict) else None
    odds_raw = raw.get("odds") if isinstance(raw.get("odds"), dict) else {}
    urls_raw = raw.get("urls") if isinstance(raw.get("urls"), dict) else None

    score_h, score_a = parse_score_str(scores.get("score"))
    ht_h, ht_a = parse_score_str(scores.get("ht_score"))
    ft_h, ft_a = parse_score_str(scores.get("ft_score"))
    et_h, et_a = parse_score_str(scores.get("et_score"))
    ps_h, ps_a = parse_score_str(scores.get("ps_score"))

    match_id = to_int(raw.get("id"))
    status = transform_match_status(raw.get("status") or raw.get("time") or "scheduled")
    period_source = raw.get("period") or ("finished" if raw.get("time") == "FT" else None)

    home_score = _first_int(score_h, ft_h, scores.get("home_score"), score_obj.get("home"))
    away_score = _first_int(score_a, ft_a, scores.get("away_score"), score_obj.get("away"))
    if status not in SCORED_STATUSES:
        home_score = away_score = None

    return {
        "match_id": match_id,
        "fixture_id": to_int(raw.get("fixture_id")) or match_id,
        "date": _kickoff(raw),
        "status": status,
        "time": trim_to_none(raw.get("time")),
        "scheduled": trim_to_none(raw.get("scheduled")),
        "minute": parse_minute(raw.get("minute")),
        "period": transform_match_period(period_source),
        "added_at": parse_datetime(raw.get("added")),
        "last_changed_at": parse_datetime(raw.get("last_changed")),
        "home_team": trim_to_none(home.get("name")) or DEFAULT_HOME_NAME,
        "home_team_id": to_int(home.get("id")),
        "home_logo": trim_to_none(home.get("logo")),
        "home_country_id": to_int(home.get("country_id")),
        "home_stadium": trim_to_none(home.get("stadium")),
        "away_team": trim_to_none(away.get("name")) or DEFAULT_AWAY_NAME,
        "away_team_id": to_int(away.get("id")),
        "away_logo": trim_to_none(away.get("logo")),
        "away_country_id": to_int(away.get("country_id")),
        "away_stadium": trim_to_none(away.get("stadium")),
        "home_score": home_score,
        "away_score": away_score,
        "home_score_halftime": _first_int(ht_h, scores.get("home_score_halftime")),
        "away_score_halftime": _first_int(ht_a, scores.get("away_score_halftime")),
        "home_score_extra_time": _first_int(et_h, scores.get("home_score_extra_time")),
        "away_score_extra_time": _first_int(et_a, scores.get("away_score_extra_time")),
        "home_score_penalties": _first_int(ps_h, scores.get("home_score_penalties")),
        "away_score_penalties": _first_int(ps_a, scores.get("away_score_penalties")),
        "scores_raw": {
            "score": trim_to_none(scores.get("score")),
            "ht_score": trim_to_none(scores.get("ht_score")),
            "ft_score": trim_to_none(scores.get("ft_score")),
            "et_score": trim_to_none(scores.get("et_score")),
            "ps_score": trim_to_none(scores.get("ps_score")),
        },
        "competition": trim_to_none(comp.get("name")) or DEFAULT_COMPETITION,
        "competition_id": to_int(comp.get("id")),
        "competition_details": {
            "is_cup": to_bool(comp.get("is_cup")),
            "is_league": to_bool(comp.get("is_league")),
            "has_groups": to_bool(comp.get("has_groups")),
            "national_teams_only": to_bool(comp.get("national_teams_only")),
            "active": True if comp.get("active") is None else to_bool(comp.get("active")),
            "tier": to_int(comp.get("tier")),
        },
        "federation": {
            "federation_id": to_int(federation_raw.get("id")),
            "name": trim_to_none(federation_raw.get("name")),
        } if federation_raw else None,
        "country": {
            "country_id": to_int(country_raw.get("id")),
            "name": trim_to_none(country_raw.get("name")),
            "flag": trim_to_none(country_raw.get("flag")),
            "fifa_code": trim_to_none(country_raw.get("fifa_code")),
            "uefa_code": trim_to_none(country_raw.get("uefa_code")),
            "is_real": None if country_raw.get("is_real") is None else to_bool(country_raw.get("is_real")),
        } if country_raw else None,
        "group_id": to_int(raw.get("group_id")),
        "season": {
            "season_id": to_int(season_raw.get("id")),
            "name": trim_to_none(season_raw.get("name")),
            "year": trim_to_none(season_raw.get("year")),
        } if season_raw else None,
        "round": trim_to_none(raw.get("round")),
        "location": trim_to_none(raw.get("location")),
        "venue": _venue(raw, home, away, country_raw),
        "referee": _referee(raw.get("referee")),
        "weather": raw["weather"] if isinstance(raw.get("weather"), dict) else None,
        "outcomes": {
            "half_time": trim_to_none(outcomes_raw.get("half_time")),
            "full_time": trim_to_none(outcomes_raw.get("full_time")),
            "extra_time": trim_to_none(outcomes_raw.get("extra_time")),
            "penalty_shootout": trim_to_none(outcomes_raw.get("penalty_shootout")),
        } if outcomes_raw else None,
        "odds": {"pre": map_odds(odds_raw.get("pre")), "live": map_odds(odds_raw.get("live"))},
        "urls": {
            "events": trim_to_none(urls_raw.get("events")),
            "statistics": trim_to_none(urls_raw.get("statistics")),
            "lineups": trim_to_none(urls_raw.get("lineups")),
            "head2head": trim_to_none(urls_raw.get("head2head")),
        } if urls_raw else None,
        "last_sync_at": _utc_now(),
        "sync_source": sync_source,
        "has_stats": False,
        "priority": 999,
        "raw": raw,
    }


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------

def quality_from_score(score: int) -> str:
    if score >= 7:
        return "complete"
    if score >= 4:
        return "partial"
    if score >= 2:
        return "minimal"
    return "none"


def _present(stats: dict, key: str) -> bool:
    value = stats.get(key)
    if isinstance(value, dict):
        return has_values(value)
    return bool(value)


def quality_score(stats: Optional[dict], events: Any, lineups: Any) -> int:
    """2 points per present signal group: volume stats, discipline stats, events, lineups."""
    score = 0
    stats = stats if isinstance(stats, dict) else {}
    if any(_present(stats, k) for k in ("possession", "shots", "corners")):
        score += 2
    if any(_present(stats, k) for k in ("yellow_cards", "red_cards", "fouls")):
        score += 2
    if isinstance(events, list) and events:
        score += 2
    if isinstance(lineups, dict) and (lineups.get("home") or lineups.get("away")):
        score += 2
    return score


def derive_quality(stats: Optional[dict], events: Any, lineups: Any) -> str:
    return quality_from_score(quality_score(stats, events, lineups))


def _normalize_event(event: dict) -> dict:
    return {
        "minute": parse_minute(event.get("minute") if event.get("minute") is not None else event.get("time")),
        "type": transform_event_type(event.get("type") or event.get("event")),
        "team": transform_event_team(event.get("team") or event.get("home_away")),
        "player": trim_to_none(event.get("player")),
        "assist_player": trim_to_none(event.get("assist_player")),
        "player_out": trim_to_none(event.get("player_out")),
        "player_in": trim_to_none(event.get("player_in")),
        "description": trim_to_none(event.get("description")),
    }


def _normalize_player(player: Any) -> Optional[dict]:
    if not isinstance(player, dict):
        return None
    return {
        "number": to_int(player.get("number")),
        "name": trim_to_none(player.get("name")),
        "position": trim_to_none(player.get("position")),
    }


def _normalize_lineup(side: Any) -> Optional[dict]:
    if not isinstance(side, dict):
        return None
    starting = side.get("starting_xi") if isinstance(side.get("starting_xi"), list) else []
    subs = side.get("substitutes") if isinstance(side.get("substitutes"), list) else []
    return {
        "formation": trim_to_none(side.get("formation")),
        "starting_xi": [p for p in (_normalize_player(x) for x in starting) if p],
        "substitutes": [p for p in (_normalize_player(x) for x in subs) if p],
    }


def normalize_stats(response: Any, match_id: Any) -> dict:
    """Map a matches/stats.json response to a canonical MatchStats document."""
    if isinstance(response, dict) and isinstance(response.get("data"), dict):
        data = response["data"]
    elif isinstance(response, dict):
        data = response
    else:
        data = {}

    stats_raw = data.get("stats") or data.get("statistics") or {}
    if not isinstance(stats_raw, dict):
        stats_raw = {}

    doc: dict = {"match_id": to_int(match_id)}
    for field, key in STAT_FIELDS.items():
        doc[field] = map_side(stats_raw.get(key))

    for field, keys in PAIR_STRING_KEYS.items():
        for key in keys:
            parsed = parse_pair(data.get(key)) if isinstance(data.get(key), (str, int, float)) else None
            if parsed and has_values(parsed):
                doc[field] = parsed
                break

    if not has_values(doc["shots"]):
        total = sum_pairs(doc["shots_on_target"], doc["shots_off_target"], doc["shots_blocked"])
        if has_values(total):
            doc["shots"] = total

    for field in STAT_FIELDS:
        if not has_values(doc[field]):
            doc[field] = None

    events_raw = data.get("events") if isinstance(data.get("events"), list) else []
    doc["events"] = [_normalize_event(e) for e in events_raw if isinstance(e, dict)]

    lineups_raw = data.get("lineups") if isinstance(data.get("lineups"), dict) else {}
    home_lineup = _normalize_lineup(lineups_raw.get("home"))
    away_lineup = _normalize_lineup(lineups_raw.get("away"))
    doc["lineups"] = {"home": home_lineup, "away": away_lineup} if (home_lineup or away_lineup) else None

    doc["additional_stats"] = data.get("statistics") if isinstance(data.get("statistics"), dict) else None
    doc["raw"] = response if isinstance(response, dict) else None
    doc["data_quality"] = derive_quality(doc, doc["events"], doc["lineups"])
    doc["sync_source"] = "stats"
    doc["last_sync_at"] = _utc_now()
    return doc


def stats_summary(doc: dict) -> str:
    """Compact 'corners=5:3 fouls=11:7' line for logs."""
    parts = []
    for field in ("possession", "corners", "offsides", "fouls", "yellow_cards", "red_cards",
                  "saves", "shots_on_target", "shots"):
        pair = doc.get(field)
        if has_values(pair):
            home = "-" if pair.get("home") is None else pair["home"]
            away = "-" if pair.get("away") is None else pair["away"]
            parts.append(f"{field}={home}:{away}")
    return " ".join(parts) if parts else "no data"
