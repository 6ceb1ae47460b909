"""Free-form prediction events (``{event, coefficient}`` pairs on older posts).

Event strings follow the bookmaker shorthand used on the site:

    П1 / Х / П2            match result (optionally prefixed 1Т / 2Т)
    1Х / 12 / Х2           double chance
    ОЗ Да / ОЗ Нет         both teams to score
    ТБ 2.5 / ТМ 2,5        total over / under (strict comparison)
    ИТ1Б 1.5 / ИТ2М 0.5    team total
    Ф1 -1.5 / Ф2 +1        handicap
    УГ ТБ 9.5, ЖК П1 ...   the same markets on a statistic (prefix)
    A и B                  combination, all parts must win

Latin aliases: W1/X/W2, TO/TU (or TB/TM), BTTS Yes/No, H1/H2, TT1O/TT2U,
1H/2H for halves.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Optional

from scoreline.etl.normalize import to_number
from scoreline.predictions.evaluator import (
    MATCH_NOT_FINISHED,
    NO_SCORE,
    STAT_UNAVAILABLE,
    UNSUPPORTED_EVENT,
    Verdict,
    score_pair,
    stat_pair,
)

PREFIX_TO_STAT = {
    "УГ": "corners",
    "ЖК": "yellow_cards",
    "КК": "red_cards",
    "УВС": "shots_on_target",
    "УД": "shots",
    "СЕЙВ": "saves",
    "ОФ": "offsides",
    "Ф": "fouls",
    "АУТ": "throw_ins",
    "ВВ": "goal_kicks",
    "ЗАМ": "substitutions",
    "CORNERS": "corners",
    "YC": "yellow_cards",
    "RC": "red_cards",
    "SOT": "shots_on_target",
    "SHOTS": "shots",
    "SAVES": "saves",
    "OFFSIDES": "offsides",
    "FOULS": "fouls",
}

_RESULTS = {"П1": "1", "W1": "1", "X": "X", "П2": "2", "W2": "2"}
_DOUBLE_CHANCES = {"1X": "1X", "12": "12", "X2": "X2", "2X": "X2"}
_TOTAL_KINDS = {"ТБ": "over", "TB": "over", "TO": "over", "ТМ": "under", "TM": "under", "TU": "under"}

_COMBO_SPLIT = re.compile(r"\s+(?:и|and|&)\s+", re.IGNORECASE)
_SCOPE_PREFIX = re.compile(r"^(1Т|2Т|1-Й|2-Й|1H|2H)\s+")
_BTTS = re.compile(r"^(?:ОЗ|BTTS)\s+(ДА|НЕТ|YES|NO)$")
_TEAM_TOTAL = re.compile(r"^(?:ИТ|IT|TT)\s*([12])\s*([БМOU])\s+(\S+)$")
_HANDICAP = re.compile(r"^(?:Ф|H)\s*([12])\s+(\S+)$")
_BARE_HANDICAP = re.compile(r"^Ф\s*[12]\s+\S+$")


@dataclass
class ParsedEvent:
    group: str  # result, double_chance, btts, total, team_total, handicap, combo
    stat: str = "goals"
    scope: str = "ft"  # ft, 1h, 2h
    outcome: Optional[str] = None  # '1', 'X', '2' or '1X', '12', 'X2'
    btts: Optional[bool] = None
    kind: Optional[str] = None  # over, under
    line: Optional[float] = None
    team: Optional[str] = None  # home, away
    parts: list = field(default_factory=list)


def _canonical(text: str) -> str:
    text = re.sub(r"\s+", " ", text.strip()).upper()
    return text.replace("Х", "X")


def parse_event(raw: Any) -> Optional[ParsedEvent]:
    """Parse one event string; None when it is not a supported market."""
    if not isinstance(raw, str) or not raw.strip():
        return None

    parts = [p for p in _COMBO_SPLIT.split(raw.strip()) if p.strip()]
    if len(parts) > 1:
        parsed_parts = [parse_event(p) for p in parts]
        if any(p is None for p in parsed_parts):
            return None
        return ParsedEvent(group="combo", parts=parsed_parts)

    s = _canonical(raw)

    scope = "ft"
    scope_match = _SCOPE_PREFIX.match(s)
    if scope_match:
        scope = "1h" if scope_match.group(1).startswith("1") else "2h"
        s = s[scope_match.end():]

    stat = "goals"
    first = s.split(" ")[0]
    if first in PREFIX_TO_STAT and not _BARE_HANDICAP.match(s):
        stat = PREFIX_TO_STAT[first]
        s = s[len(first):].strip()
        # Half scopes only exist for goals
        scope = "ft"

    if s in _RESULTS:
        return ParsedEvent(group="result", stat=stat, scope=scope, outcome=_RESULTS[s])

    if s in _DOUBLE_CHANCES:
        return ParsedEvent(group="double_chance", stat=stat, scope=scope, outcome=_DOUBLE_CHANCES[s])

    btts = _BTTS.match(s)
    if btts and stat == "goals":
        return ParsedEvent(group="btts", scope=scope, btts=btts.group(1) in ("ДА", "YES"))

    tokens = s.split(" ")
    if len(tokens) == 2 and tokens[0] in _TOTAL_KINDS:
        line = to_number(tokens[1])
        if line is not None:
            return ParsedEvent(
                group="total", stat=stat, scope=scope, kind=_TOTAL_KINDS[tokens[0]], line=line,
            )

    team_total = _TEAM_TOTAL.match(s)
    if team_total:
        line = to_number(team_total.group(3))
        if line is not None:
            return ParsedEvent(
                group="team_total",
                stat=stat,
                scope=scope,
                team="home" if team_total.group(1) == "1" else "away",
                kind="over" if team_total.group(2) in ("Б", "O") else "under",
                line=line,
            )

    handicap = _HANDICAP.match(s)
    if handicap:
        line = to_number(handicap.group(2))
        if line is not None:
            return ParsedEvent(
                group="handicap",
                stat=stat,
                scope=scope,
                team="home" if handicap.group(1) == "1" else "away",
                line=line,
            )

    return None


def _missing(stat: str) -> Verdict:
    return Verdict.undecided(NO_SCORE if stat == "goals" else STAT_UNAVAILABLE)


def _pair(parsed: ParsedEvent, match: Any, stats: Any) -> Optional[tuple[float, float]]:
    if parsed.stat == "goals":
        return score_pair(match, parsed.scope)
    return stat_pair(match, stats, parsed.stat)


def _evaluate_parsed(parsed: ParsedEvent, match: Any, stats: Any) -> Verdict:
    if parsed.group == "combo":
        undecided = None
        for part in parsed.parts:
            verdict = _evaluate_parsed(part, match, stats)
            if verdict.won is False:
                return Verdict(won=False)
            if verdict.won is None and undecided is None:
                undecided = verdict
        return undecided if undecided is not None else Verdict(won=True)

    pair = _pair(parsed, match, stats)
    if pair is None:
        return _missing(parsed.stat)
    home, away = pair

    if parsed.group == "result":
        actual = "1" if home > away else "2" if home < away else "X"
        return Verdict(won=actual == parsed.outcome, actual=home - away)

    if parsed.group == "double_chance":
        if parsed.outcome == "1X":
            won = home >= away
        elif parsed.outcome == "12":
            won = home != away
        else:
            won = away >= home
        return Verdict(won=won, actual=home - away)

    if parsed.group == "btts":
        both = home > 0 and away > 0
        return Verdict(won=both if parsed.btts else not both)

    if parsed.group in ("total", "team_total"):
        if parsed.group == "total":
            value = home + away
        else:
            value = home if parsed.team == "home" else away
        won = value > parsed.line if parsed.kind == "over" else value < parsed.line
        return Verdict(won=won, actual=value, expected=parsed.line)

    if parsed.group == "handicap":
        diff = home - away if parsed.team == "home" else away - home
        return Verdict(won=diff + parsed.line > 0, actual=diff, expected=parsed.line)

    return Verdict.undecided(UNSUPPORTED_EVENT)


def evaluate_event(raw: Any, match: Any, stats: Any = None) -> Verdict:
    """Settle one free-form event string against a match and its stats."""
    parsed = parse_event(raw)
    if parsed is None:
        return Verdict.undecided(UNSUPPORTED_EVENT)
    status = match.get("status") if isinstance(match, dict) else getattr(match, "status", None)
    if status != "finished":
        return Verdict.undecided(MATCH_NOT_FINISHED)
    return _evaluate_parsed(parsed, match, stats)


def evaluate_events(events: list, match: Any, stats: Any = None) -> list[dict]:
    """Settlement details for a legacy ``events`` list."""
    details = []
    for item in events or []:
        if not isinstance(item, dict):
            continue
        label = str(item.get("event") or "").strip()
        verdict = evaluate_event(label, match, stats)
        details.append({
            "event": label,
            "coefficient": float(to_number(item.get("coefficient")) or 0),
            "result": verdict.result,
            "reason": verdict.reason,
        })
    return details
