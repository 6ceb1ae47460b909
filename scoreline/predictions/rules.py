"""Outcome rule definitions (the ``outcomes[]`` entries of an OutcomeGroup).

Rules are stored as JSON; these models validate them and accept both the
snake_case keys the store uses and the camelCase keys the CMS editor writes
(``comparisonOperator``, ``outcomeValue``, ``eventFilter`` ...).
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

COMPARISON_OPERATORS = (
    "gt", "gte", "lt", "lte", "eq", "neq", "between", "in", "even", "odd", "exists",
)
SCOPES = ("both", "home", "away", "difference")
AGGREGATIONS = ("auto", "sum", "difference", "min", "max", "parity", "direct")
# Older rules carry calculationType instead of scope+aggregation.
CALCULATION_TYPES = ("sum", "min", "max", "home", "away", "difference")
CONDITION_LOGIC = ("AND", "OR")


class _RuleModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class EventFilter(_RuleModel):
    type: str
    team: str = "any"  # any, home, away
    period: str = "any"  # any, 1h, 2h

    @field_validator("team", "period", mode="before")
    @classmethod
    def default_any(cls, v: Any) -> Any:
        return v or "any"


class Range(_RuleModel):
    lower: Optional[float] = None
    upper: Optional[float] = None


class OutcomeRule(_RuleModel):
    """
    One outcome definition.

    The rule's own operator is the primary check; ``conditions`` are sub-rules
    combined with it through ``condition_logic``. A rule with conditions only
    (no operator of its own) is decided by the conditions alone.
    """

    name: str = ""
    comparison_operator: Optional[str] = None
    scope: Optional[str] = None
    aggregation: Optional[str] = None
    calculation_type: Optional[str] = None
    stat: Optional[str] = None

    value: Optional[float] = None
    values: list[float] = Field(default_factory=list)
    outcome_value: Optional[float] = None
    range: Optional[Range] = None
    set_values: list[float] = Field(default_factory=list, alias="set")
    event_filter: Optional[EventFilter] = None

    conditions: list["OutcomeRule"] = Field(default_factory=list)
    condition_logic: str = "AND"

    @field_validator("comparison_operator")
    @classmethod
    def check_operator(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in COMPARISON_OPERATORS:
            raise ValueError(f"unknown comparison operator: {v}")
        return v

    @field_validator("scope")
    @classmethod
    def check_scope(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in SCOPES:
            raise ValueError(f"unknown scope: {v}")
        return v

    @field_validator("aggregation")
    @classmethod
    def check_aggregation(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in AGGREGATIONS:
            raise ValueError(f"unknown aggregation: {v}")
        return v

    @field_validator("calculation_type")
    @classmethod
    def check_calculation_type(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in CALCULATION_TYPES:
            raise ValueError(f"unknown calculation type: {v}")
        return v

    @field_validator("condition_logic", mode="before")
    @classmethod
    def normalize_logic(cls, v: Any) -> str:
        logic = str(v or "AND").upper()
        if logic not in CONDITION_LOGIC:
            raise ValueError(f"unknown condition logic: {v}")
        return logic

    @field_validator("set_values", mode="before")
    @classmethod
    def unwrap_set(cls, v: Any) -> Any:
        # CMS arrays store entries as {"value": n}
        if not v:
            return []
        return [item.get("value") if isinstance(item, dict) else item for item in v]

    @field_validator("values", mode="before")
    @classmethod
    def unwrap_values(cls, v: Any) -> Any:
        if not v:
            return []
        return [item.get("value") if isinstance(item, dict) else item for item in v]

    @property
    def operator(self) -> Optional[str]:
        """Effective operator: a bare outcome_value means equality."""
        if self.comparison_operator:
            return self.comparison_operator
        if self.outcome_value is not None:
            return "eq"
        return None

    def has_own_check(self) -> bool:
        return self.operator is not None


def validate_rule(rule: OutcomeRule) -> list[str]:
    """Configuration problems that would leave the rule permanently undecided."""
    errors = []
    op = rule.operator
    if op is None and not rule.conditions:
        errors.append("rule has neither an operator nor conditions")
    if op == "between" and (rule.range is None or rule.range.lower is None or rule.range.upper is None):
        errors.append("between requires range.lower and range.upper")
    if op == "in" and not rule.set_values:
        errors.append("in requires a non-empty set")
    if op == "exists" and rule.event_filter is None:
        errors.append("exists requires event_filter.type")
    if op in ("gt", "gte", "lt", "lte", "eq", "neq"):
        if rule.outcome_value is None and rule.value is None and len(rule.values) > 1:
            errors.append("comparison needs a single value, got several")
    for index, condition in enumerate(rule.conditions):
        errors.extend(f"conditions[{index}]: {e}" for e in validate_rule(condition))
    return errors
