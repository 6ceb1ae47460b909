"""Prediction outcome evaluator.

Evaluates one OutcomeRule against a match and its MatchStats and returns a
Verdict: ``won`` is True/False, or None when the data cannot decide it.
Missing data never turns into a loss.

Actual value = stat pair collapsed by scope x aggregation:

    scope=both       auto -> home + away
    scope=home/away  auto -> that side (direct)
    scope=difference auto -> home - away
    aggregation sum/difference/min/max apply to both sides regardless of scope
    aggregation parity -> (home + away) mod 2

The stat comes from the rule (``stat``), else the market's stat_path, else
``outcome`` (1 home win, 0 draw, 2 away win) for match-result rules, else goals.
"""

import math
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from scoreline.etl.normalize import parse_pair, to_number
from scoreline.predictions.rules import OutcomeRule
from scoreline.predictions.scoring import summarize

# Undecided reasons
MATCH_NOT_FINISHED = "match_not_finished"
NO_SCORE = "no_score"
STAT_UNAVAILABLE = "stat_unavailable"
UNSUPPORTED_EVENT = "unsupported_event"

GOAL_STATS = {"goals", "goals_1h", "goals_2h", "outcome"}

# camelCase stat paths written by the CMS -> MatchStats fields
STAT_ALIASES = {
    "yellowCards": "yellow_cards",
    "redCards": "red_cards",
    "shotsOnTarget": "shots_on_target",
    "shotsOffTarget": "shots_off_target",
    "shotsBlocked": "shots_blocked",
    "passesAccurate": "passes_accurate",
    "passAccuracy": "pass_accuracy",
    "dangerousAttacks": "dangerous_attacks",
    "throwIns": "throw_ins",
    "goalKicks": "goal_kicks",
}

# Stats only reported as "h:a" strings inside additional_stats
ADDITIONAL_STAT_KEYS = {
    "throw_ins": ("throw_ins", "throwIns"),
    "goal_kicks": ("goal_kicks", "goalKicks"),
    "substitutions": ("substitutions",),
}


@dataclass
class Verdict:
    won: Optional[bool]
    reason: Optional[str] = None
    actual: Optional[float] = None
    expected: Optional[Any] = None

    @property
    def result(self) -> str:
        if self.won is None:
            return "undecided"
        return "won" if self.won else "lost"

    @classmethod
    def undecided(cls, reason: str) -> "Verdict":
        return cls(won=None, reason=reason)


def normalize_stat_name(stat: Optional[str]) -> Optional[str]:
    if not stat:
        return None
    base = stat.split(".")[0]
    return STAT_ALIASES.get(base, base)


def outcome_code(home: float, away: float) -> int:
    """Match-result code: 1 home win, 0 draw, 2 away win."""
    if home > away:
        return 1
    if home < away:
        return 2
    return 0


def _field(doc: Any, name: str) -> Any:
    if doc is None:
        return None
    if isinstance(doc, dict):
        return doc.get(name)
    return getattr(doc, name, None)


def score_pair(match: Any, period: str = "ft") -> Optional[tuple[float, float]]:
    """(home, away) goals for ft, 1h (half-time score) or 2h (ft minus half-time)."""
    home = to_number(_field(match, "home_score"))
    away = to_number(_field(match, "away_score"))
    if period == "ft":
        if home is None or away is None:
            return None
        return home, away

    home_ht = to_number(_field(match, "home_score_halftime"))
    away_ht = to_number(_field(match, "away_score_halftime"))
    if home_ht is None or away_ht is None:
        return None
    if period == "1h":
        return home_ht, away_ht
    if home is None or away is None:
        return None
    return home - home_ht, away - away_ht


def stat_pair(match: Any, stats: Any, stat: str) -> Optional[tuple[float, float]]:
    """Both sides of one statistic, or None when either side is missing."""
    stat = normalize_stat_name(stat) or "goals"
    if stat in ("goals", "outcome"):
        return score_pair(match, "ft")
    if stat == "goals_1h":
        return score_pair(match, "1h")
    if stat == "goals_2h":
        return score_pair(match, "2h")

    group = _field(stats, stat)
    if isinstance(group, dict):
        home = to_number(group.get("home"))
        away = to_number(group.get("away"))
        if home is not None and away is not None:
            return home, away

    additional = _field(stats, "additional_stats")
    if isinstance(additional, dict):
        for key in ADDITIONAL_STAT_KEYS.get(stat, (stat,)):
            raw = additional.get(key)
            if isinstance(raw, str):
                pair = parse_pair(raw)
                if pair["home"] is not None and pair["away"] is not None:
                    return pair["home"], pair["away"]
    return None


def resolve_stat(rule: OutcomeRule, default_stat: Optional[str] = None) -> str:
    """Explicit stat, else the caller default, else match result for unscoped value rules."""
    if rule.stat:
        return normalize_stat_name(rule.stat)
    if default_stat:
        return normalize_stat_name(default_stat)
    if rule.scope not in (None, "both"):
        return "goals"
    if rule.operator == "in":
        return "outcome"
    if rule.outcome_value is not None and not rule.aggregation and not rule.calculation_type:
        return "outcome"
    return "goals"


def resolve_scope_and_aggregation(rule: OutcomeRule) -> tuple[str, str]:
    scope = rule.scope
    aggregation = rule.aggregation

    if not aggregation and rule.calculation_type:
        if rule.calculation_type in ("home", "away"):
            scope = scope or rule.calculation_type
            aggregation = "direct"
        else:
            aggregation = rule.calculation_type

    scope = scope or "both"
    if not aggregation or aggregation == "auto":
        if scope in ("home", "away"):
            aggregation = "direct"
        elif scope == "difference":
            aggregation = "difference"
        else:
            aggregation = "sum"
    return scope, aggregation


def compute_actual_value(
    rule: OutcomeRule,
    match: Any,
    stats: Any,
    default_stat: Optional[str] = None,
) -> Optional[float]:
    """Collapse the rule's statistic to one number, None when data is missing."""
    stat = resolve_stat(rule, default_stat)
    pair = stat_pair(match, stats, stat)
    if pair is None:
        return None
    home, away = pair

    if stat == "outcome" and rule.scope in (None, "both"):
        return outcome_code(home, away)

    scope, aggregation = resolve_scope_and_aggregation(rule)
    if aggregation == "direct":
        if scope == "home":
            return home
        if scope == "away":
            return away
        if scope == "difference":
            return home - away
        return home + away
    if aggregation == "sum":
        return home + away
    if aggregation == "difference":
        return home - away
    if aggregation == "min":
        return min(home, away)
    if aggregation == "max":
        return max(home, away)
    if aggregation == "parity":
        return (home + away) % 2
    return None


def event_exists(stats: Any, event_filter) -> Optional[bool]:
    """
    True when any event matches {type, team, period}; None with no event feed.

    Period 1h means minute <= 45, 2h minute > 45. Events without a minute
    pass the period filter.
    """
    if event_filter is None:
        return None
    events = _field(stats, "events")
    if not isinstance(events, list) or not events:
        return None

    for event in events:
        if not isinstance(event, dict) or event.get("type") != event_filter.type:
            continue
        if event_filter.team not in ("any", None) and event.get("team") != event_filter.team:
            continue
        minute = to_number(event.get("minute"))
        if minute is not None and event_filter.period == "1h" and minute > 45:
            continue
        if minute is not None and event_filter.period == "2h" and minute <= 45:
            continue
        return True
    return False


def comparison_value(rule: OutcomeRule, value: Optional[float] = None) -> Optional[float]:
    if rule.outcome_value is not None:
        return rule.outcome_value
    if value is not None:
        return value
    if rule.value is not None:
        return rule.value
    if len(rule.values) == 1:
        return rule.values[0]
    return None


def _missing_reason(stat: str) -> str:
    return NO_SCORE if stat in GOAL_STATS else STAT_UNAVAILABLE


def _compare(op: str, actual: float, expected: float) -> bool:
    if op == "gt":
        return actual > expected
    if op == "gte":
        return actual >= expected
    if op == "lt":
        return actual < expected
    if op == "lte":
        return actual <= expected
    if op == "eq":
        return math.isclose(actual, expected)
    return not math.isclose(actual, expected)


def _evaluate_check(
    rule: OutcomeRule,
    match: Any,
    stats: Any,
    value: Optional[float],
    default_stat: Optional[str],
) -> Verdict:
    op = rule.operator

    if op == "exists":
        if rule.event_filter is None:
            return Verdict.undecided(UNSUPPORTED_EVENT)
        found = event_exists(stats, rule.event_filter)
        if found is None:
            return Verdict.undecided(STAT_UNAVAILABLE)
        return Verdict(won=found)

    stat = resolve_stat(rule, default_stat)
    actual = compute_actual_value(rule, match, stats, default_stat)
    if actual is None:
        return Verdict.undecided(_missing_reason(stat))

    if op in ("even", "odd"):
        is_even = abs(actual) % 2 == 0
        return Verdict(won=is_even if op == "even" else not is_even, actual=actual)

    if op == "between":
        if rule.range is None or rule.range.lower is None or rule.range.upper is None:
            return Verdict.undecided(UNSUPPORTED_EVENT)
        won = rule.range.lower <= actual <= rule.range.upper
        return Verdict(won=won, actual=actual, expected=[rule.range.lower, rule.range.upper])

    if op == "in":
        if not rule.set_values:
            return Verdict.undecided(UNSUPPORTED_EVENT)
        won = any(math.isclose(actual, v) for v in rule.set_values)
        return Verdict(won=won, actual=actual, expected=list(rule.set_values))

    expected = comparison_value(rule, value)
    if expected is None:
        return Verdict.undecided(UNSUPPORTED_EVENT)
    return Verdict(won=_compare(op, actual, expected), actual=actual, expected=expected)


def _evaluate_rule(
    rule: OutcomeRule,
    match: Any,
    stats: Any,
    value: Optional[float],
    default_stat: Optional[str],
) -> Verdict:
    verdicts = []
    if rule.has_own_check():
        verdicts.append(_evaluate_check(rule, match, stats, value, default_stat))
    for condition in rule.conditions:
        # The predictor's line only fills conditions that carry no value of their own
        own = comparison_value(condition)
        verdicts.append(
            _evaluate_rule(condition, match, stats, None if own is not None else value, default_stat)
        )

    if not verdicts:
        return Verdict.undecided(UNSUPPORTED_EVENT)
    if len(verdicts) == 1:
        return verdicts[0]

    # A compound with any undecided part is undecided as a whole.
    for verdict in verdicts:
        if verdict.won is None:
            return Verdict.undecided(verdict.reason)

    if rule.condition_logic == "OR":
        won = any(v.won for v in verdicts)
    else:
        won = all(v.won for v in verdicts)
    return Verdict(won=won, actual=verdicts[0].actual, expected=verdicts[0].expected)


def evaluate(
    rule: OutcomeRule,
    match: Any,
    stats: Any = None,
    value: Optional[float] = None,
    default_stat: Optional[str] = None,
) -> Verdict:
    """
    Settle one outcome rule against a finished match.

    Args:
        rule: Outcome definition.
        match: Match document (dict or model).
        stats: MatchStats document, may be None.
        value: Line chosen by the predictor (e.g. 2.5), overrides rule.value.
        default_stat: Market stat_path used when the rule names no stat.
    """
    if match is None or _field(match, "status") != "finished":
        return Verdict.undecided(MATCH_NOT_FINISHED)
    return _evaluate_rule(rule, match, stats, value, default_stat)


def outcome_label(name: str, value: Optional[float] = None) -> str:
    if value is None:
        return name
    return f"{name} {value:g}" if isinstance(value, float) else f"{name} {value}"


def evaluate_many(
    predictions: Iterable[dict],
    match: Any,
    stats: Any = None,
) -> dict:
    """
    Evaluate a list of outcome predictions and aggregate them.

    Each prediction is ``{"rule": OutcomeRule, "coefficient": float}`` with
    optional ``value``, ``stat`` and ``label``.
    """
    details = []
    for prediction in predictions:
        rule = prediction["rule"]
        verdict = evaluate(
            rule,
            match,
            stats,
            value=prediction.get("value"),
            default_stat=prediction.get("stat"),
        )
        details.append({
            "event": prediction.get("label") or outcome_label(rule.name, prediction.get("value")),
            "coefficient": float(prediction.get("coefficient") or 0),
            "result": verdict.result,
            "reason": verdict.reason,
        })

    summary = summarize(details)
    summary["details"] = details
    return summary
