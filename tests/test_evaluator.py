"""Tests for the outcome rule evaluator."""

import pytest
from pydantic import ValidationError

from scoreline.predictions.evaluator import (
    MATCH_NOT_FINISHED,
    NO_SCORE,
    STAT_UNAVAILABLE,
    UNSUPPORTED_EVENT,
    compute_actual_value,
    evaluate,
    evaluate_many,
    resolve_scope_and_aggregation,
    resolve_stat,
)
from scoreline.predictions.rules import OutcomeRule, validate_rule
from tests.helpers import finished_match


def rule(**data) -> OutcomeRule:
    return OutcomeRule.model_validate(data)


BTTS = {"name": "BTTS", "aggregation": "min", "comparisonOperator": "gt", "outcomeValue": 0}
OVER_25 = {"name": "Over 2.5", "scope": "both", "aggregation": "sum", "comparisonOperator": "gt", "values": [2.5]}

STATS = {
    "corners": {"home": 6, "away": 3},
    "yellow_cards": {"home": 2, "away": None},
    "additional_stats": {"throw_ins": "20:18"},
    "events": [
        {"minute": 23, "type": "goal", "team": "home"},
        {"minute": 70, "type": "red_card", "team": "away"},
        {"minute": None, "type": "penalty", "team": "home"},
    ],
}


class TestRuleModel:
    def test_camel_case_keys(self):
        r = rule(comparisonOperator="between", range={"lower": 1, "upper": 3}, eventFilter={"type": "goal"})
        assert r.comparison_operator == "between"
        assert r.range.lower == 1
        assert r.event_filter.team == "any"

    def test_set_entries_unwrap(self):
        r = rule(comparisonOperator="in", set=[{"value": 1}, {"value": 0}])
        assert r.set_values == [1, 0]

    def test_unknown_operator_rejected(self):
        with pytest.raises(ValidationError):
            rule(comparisonOperator="approx")

    def test_condition_logic_uppercased(self):
        assert rule(conditionLogic="or").condition_logic == "OR"

    def test_bare_outcome_value_means_eq(self):
        assert rule(outcomeValue=1).operator == "eq"

    def test_validate_rule_reports_problems(self):
        assert validate_rule(rule(comparisonOperator="between")) == [
            "between requires range.lower and range.upper",
        ]
        assert validate_rule(rule(name="empty")) == ["rule has neither an operator nor conditions"]
        assert validate_rule(rule(**OVER_25)) == []


class TestResolution:
    def test_stat_precedence(self):
        assert resolve_stat(rule(stat="yellowCards")) == "yellow_cards"
        assert resolve_stat(rule(comparisonOperator="gt"), default_stat="corners") == "corners"
        assert resolve_stat(rule(outcomeValue=1)) == "outcome"
        assert resolve_stat(rule(comparisonOperator="in", set=[1])) == "outcome"
        assert resolve_stat(rule(**BTTS)) == "goals"

    @pytest.mark.parametrize("data,expected", [
        ({}, ("both", "sum")),
        ({"scope": "home"}, ("home", "direct")),
        ({"scope": "difference"}, ("difference", "difference")),
        ({"scope": "both", "aggregation": "max"}, ("both", "max")),
        ({"calculationType": "away"}, ("away", "direct")),
        ({"calculationType": "min"}, ("both", "min")),
    ])
    def test_scope_and_aggregation(self, data, expected):
        assert resolve_scope_and_aggregation(rule(**data)) == expected

    @pytest.mark.parametrize("data,expected", [
        ({"scope": "both", "aggregation": "sum"}, 3),
        ({"scope": "home"}, 2),
        ({"scope": "away", "aggregation": "auto"}, 1),
        ({"scope": "difference"}, 1),
        ({"aggregation": "min"}, 1),
        ({"aggregation": "max"}, 2),
        ({"aggregation": "parity"}, 1),
    ])
    def test_actual_value_goals(self, data, expected):
        assert compute_actual_value(rule(**data), finished_match(home=2, away=1), None) == expected

    def test_outcome_codes(self):
        r = rule(outcomeValue=1)
        assert compute_actual_value(r, finished_match(home=2, away=1), None) == 1
        assert compute_actual_value(r, finished_match(home=1, away=1), None) == 0
        assert compute_actual_value(r, finished_match(home=0, away=3), None) == 2

    def test_scoped_outcome_value_reads_goals(self):
        assert resolve_stat(rule(scope="home", outcomeValue=1.5)) == "goals"
        assert resolve_stat(rule(scope="both", outcomeValue=1)) == "outcome"

        home_over = rule(comparisonOperator="gt", scope="home", outcomeValue=1.5)
        assert compute_actual_value(home_over, finished_match(home=0, away=2), None) == 0
        assert evaluate(home_over, finished_match(home=0, away=2)).won is False
        assert evaluate(home_over, finished_match(home=2, away=0)).won is True

    def test_difference_with_outcome_value(self):
        handicap = rule(comparisonOperator="gt", scope="difference", outcomeValue=-1.5)
        assert compute_actual_value(handicap, finished_match(home=0, away=3), None) == -3
        assert evaluate(handicap, finished_match(home=0, away=3)).won is False
        assert evaluate(handicap, finished_match(home=1, away=2)).won is True

    def test_half_time_goals(self):
        match = finished_match(home=3, away=1, ht=(1, 1))
        assert compute_actual_value(rule(stat="goals_1h"), match, None) == 2
        assert compute_actual_value(rule(stat="goals_2h"), match, None) == 2

    def test_additional_stats_fallback(self):
        r = rule(stat="throwIns", aggregation="sum")
        assert compute_actual_value(r, finished_match(), STATS) == 38


class TestOperators:
    @pytest.mark.parametrize("data,won", [
        ({"comparisonOperator": "gt", "value": 2.5}, True),
        ({"comparisonOperator": "gte", "value": 3}, True),
        ({"comparisonOperator": "lt", "value": 3}, False),
        ({"comparisonOperator": "lte", "value": 3}, True),
        ({"comparisonOperator": "eq", "values": [3]}, True),
        ({"comparisonOperator": "neq", "value": 3}, False),
        ({"comparisonOperator": "between", "range": {"lower": 2, "upper": 3}}, True),
        ({"comparisonOperator": "between", "range": {"lower": 4, "upper": 6}}, False),
        ({"comparisonOperator": "odd"}, True),
        ({"comparisonOperator": "even"}, False),
    ])
    def test_total_goals_three(self, data, won):
        verdict = evaluate(rule(**data), finished_match(home=2, away=1))
        assert verdict.won is won

    def test_in_set_on_outcome(self):
        double_chance = rule(comparisonOperator="in", set=[{"value": 1}, {"value": 0}])
        assert evaluate(double_chance, finished_match(home=1, away=1)).won is True
        assert evaluate(double_chance, finished_match(home=0, away=1)).won is False

    def test_predictor_value_overrides_rule_value(self):
        over = rule(comparisonOperator="gt", value=0.5)
        assert evaluate(over, finished_match(home=2, away=1), value=3.5).won is False

    def test_market_stat_path(self):
        over_corners = rule(comparisonOperator="gt", value=8.5)
        verdict = evaluate(over_corners, finished_match(), STATS, default_stat="corners")
        assert verdict.won is True
        assert verdict.actual == 9
        assert verdict.expected == 8.5


class TestExists:
    @pytest.mark.parametrize("event_filter,won", [
        ({"type": "goal"}, True),
        ({"type": "goal", "team": "away"}, False),
        ({"type": "goal", "period": "2h"}, False),
        ({"type": "red_card", "team": "away", "period": "2h"}, True),
        ({"type": "red_card", "period": "1h"}, False),
        # events without a minute pass the period filter
        ({"type": "penalty", "period": "2h"}, True),
        ({"type": "own_goal"}, False),
    ])
    def test_event_filter(self, event_filter, won):
        r = rule(comparisonOperator="exists", eventFilter=event_filter)
        assert evaluate(r, finished_match(), STATS).won is won

    def test_no_event_feed_is_undecided(self):
        r = rule(comparisonOperator="exists", eventFilter={"type": "goal"})
        verdict = evaluate(r, finished_match(), {"events": []})
        assert verdict.won is None
        assert verdict.reason == STAT_UNAVAILABLE

    def test_missing_filter_is_unsupported(self):
        verdict = evaluate(rule(comparisonOperator="exists"), finished_match(), STATS)
        assert verdict.reason == UNSUPPORTED_EVENT


class TestCompound:
    def test_btts_and_over_on_two_one(self):
        compound = rule(name="BTTS & Over 2.5", conditions=[BTTS, OVER_25], conditionLogic="AND")
        verdict = evaluate(compound, finished_match(home=2, away=1))
        assert verdict.won is True

    def test_and_fails_when_one_part_fails(self):
        compound = rule(conditions=[BTTS, OVER_25])
        assert evaluate(compound, finished_match(home=2, away=0)).won is False

    def test_or(self):
        compound = rule(conditions=[BTTS, OVER_25], conditionLogic="OR")
        assert evaluate(compound, finished_match(home=3, away=0)).won is True
        assert evaluate(compound, finished_match(home=1, away=0)).won is False

    def test_primary_check_combines_with_conditions(self):
        home_win_and_btts = rule(outcomeValue=1, conditions=[BTTS])
        assert evaluate(home_win_and_btts, finished_match(home=2, away=1)).won is True
        assert evaluate(home_win_and_btts, finished_match(home=1, away=2)).won is False

    def test_missing_stat_makes_compound_undecided(self):
        compound = rule(conditions=[OVER_25, {"stat": "offsides", "comparisonOperator": "gt", "value": 1}])
        verdict = evaluate(compound, finished_match(home=2, away=1), STATS)
        assert verdict.won is None
        assert verdict.reason == STAT_UNAVAILABLE

    def test_missing_stat_undecided_even_for_or(self):
        compound = rule(
            conditions=[OVER_25, {"stat": "offsides", "comparisonOperator": "gt", "value": 1}],
            conditionLogic="OR",
        )
        assert evaluate(compound, finished_match(home=2, away=1), STATS).won is None

    def test_predictor_value_does_not_override_condition_values(self):
        compound = rule(conditions=[BTTS, {"aggregation": "sum", "comparisonOperator": "gt"}])
        assert evaluate(compound, finished_match(home=2, away=1), value=2.5).won is True
        assert evaluate(compound, finished_match(home=1, away=1), value=2.5).won is False


class TestUndecided:
    def test_match_not_finished(self):
        verdict = evaluate(rule(**OVER_25), finished_match(status="live"))
        assert verdict.won is None
        assert verdict.reason == MATCH_NOT_FINISHED

    def test_missing_match(self):
        assert evaluate(rule(**OVER_25), None).reason == MATCH_NOT_FINISHED

    def test_missing_score(self):
        verdict = evaluate(rule(**OVER_25), finished_match(home=None, away=None))
        assert verdict.won is None
        assert verdict.reason == NO_SCORE

    def test_one_sided_stat_is_undecided_not_lost(self):
        r = rule(stat="yellow_cards", comparisonOperator="lt", value=10)
        verdict = evaluate(r, finished_match(), STATS)
        assert verdict.won is None
        assert verdict.reason == STAT_UNAVAILABLE

    def test_missing_stats_document(self):
        r = rule(stat="corners", comparisonOperator="gt", value=1)
        assert evaluate(r, finished_match(), None).reason == STAT_UNAVAILABLE

    def test_comparison_without_value_is_unsupported(self):
        verdict = evaluate(rule(comparisonOperator="gt"), finished_match())
        assert verdict.reason == UNSUPPORTED_EVENT


class TestEvaluateMany:
    def test_summary_and_details(self):
        predictions = [
            {"rule": rule(name="Over", comparisonOperator="gt"), "value": 2.5, "coefficient": 1.8},
            {"rule": rule(name="Home win", outcomeValue=1), "coefficient": 2.1},
            {"rule": rule(name="Corners", stat="offsides", comparisonOperator="gt", value=1), "coefficient": 1.5},
        ]

        result = evaluate_many(predictions, finished_match(home=1, away=2), STATS)

        assert [d["result"] for d in result["details"]] == ["won", "lost", "undecided"]
        assert result["details"][0]["event"] == "Over 2.5"
        assert result["won"] == 1
        assert result["lost"] == 1
        assert result["undecided"] == 1
        assert result["total"] == 3
        assert result["hit_rate"] == pytest.approx(1 / 3)
        assert result["roi"] == pytest.approx((0.8 - 1) / 3)
