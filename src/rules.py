"""
Rule evaluators, one per RuleKind.

A rule is prepared once per column (regex compiled, numeric bounds parsed,
evaluation time fixed) and then evaluated against each cell. Preparation
failures are kept on the prepared rule instead of being raised, so every
non-blank cell in the column reports the broken rule and the rest of the
sheet is still validated.

REGEX uses re.search: the pattern may match anywhere in the trimmed cell
text unless the pattern itself is anchored with ^ and $.
"""

import logging
import re
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from coercion import is_blank, to_date, to_number, to_trimmed_string
from errors import RuleParseError
from models import (
    AllowedValuesRule,
    Cell,
    DatePastRule,
    NumericRangeRule,
    RegexRule,
    RequiredRule,
    RuleDefinition,
    RuleKind,
    UniqueRule,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RuleOutcome:
    """Verdict for one cell."""
    passed: bool
    reason: Optional[str] = None


PASSED = RuleOutcome(True)


def _fail(reason: str) -> RuleOutcome:
    return RuleOutcome(False, reason)


class ColumnSnapshot:
    """All data values of one column, with a frequency table built on first use."""

    def __init__(self, values: List[Cell]):
        self.values = values
        self._counts: Optional[Counter] = None

    @property
    def counts(self) -> Counter:
        """Occurrences of each non-blank trimmed value."""
        if self._counts is None:
            self._counts = Counter(
                to_trimmed_string(value) for value in self.values if not is_blank(value)
            )
        return self._counts

    def occurrences(self, value: Cell) -> int:
        return self.counts.get(to_trimmed_string(value), 0)


@dataclass
class PreparedRule:
    """A rule ready to be evaluated against the cells of one column."""
    rule: RuleDefinition
    now: datetime
    compiled: Any = None
    error: Optional[RuleParseError] = None

    @property
    def kind(self) -> RuleKind:
        return self.rule.kind

    def evaluate(self, value: Cell, column: ColumnSnapshot) -> RuleOutcome:
        """Evaluate the rule for one cell of the column."""
        return EVALUATORS[self.kind](value, self, column)


# =========================================================================
# Preparation
# =========================================================================

def _trim_allowed(rule: AllowedValuesRule):
    trimmed = []
    for entry in rule.allowed_values:
        text = to_trimmed_string(entry)
        if text not in trimmed:
            trimmed.append(text)
    return tuple(trimmed)


def _compile_pattern(rule: RegexRule):
    if not isinstance(rule.pattern, str):
        raise RuleParseError(f"Invalid regex pattern: {rule.pattern!r}", rule.kind.value)
    try:
        return re.compile(rule.pattern)
    except re.error as e:
        raise RuleParseError(
            f"Invalid regex pattern '{rule.pattern}': {e}", rule.kind.value
        ) from e


def _parse_bounds(rule: NumericRangeRule):
    low = to_number(rule.min_value)
    high = to_number(rule.max_value)
    if low is None or high is None:
        raise RuleParseError(
            f"Invalid numeric range bounds: min={rule.min_value!r}, max={rule.max_value!r}",
            rule.kind.value,
        )
    if low > high:
        raise RuleParseError(
            f"Invalid numeric range bounds: min {low:g} is greater than max {high:g}",
            rule.kind.value,
        )
    return low, high


def prepare_rule(rule: RuleDefinition, now: Optional[datetime] = None) -> PreparedRule:
    """
    Prepare a rule for evaluation.

    Args:
        rule: Rule definition from the data dictionary
        now: Evaluation time used by DATE_PAST (defaults to the current time)

    Returns:
        PreparedRule; its `error` is set when the rule cannot be used
    """
    if type(rule) not in RULE_TYPES:
        raise TypeError(f"Unsupported rule definition: {rule!r}")

    prepared = PreparedRule(rule=rule, now=now or datetime.now())
    try:
        if isinstance(rule, AllowedValuesRule):
            prepared.compiled = _trim_allowed(rule)
        elif isinstance(rule, RegexRule):
            prepared.compiled = _compile_pattern(rule)
        elif isinstance(rule, NumericRangeRule):
            prepared.compiled = _parse_bounds(rule)
    except RuleParseError as e:
        logger.warning("Rule %s cannot be evaluated: %s", rule.kind.value, e)
        prepared.error = e
    return prepared


# =========================================================================
# Evaluators
# =========================================================================

def check_required(value: Cell, prepared: PreparedRule, column: ColumnSnapshot) -> RuleOutcome:
    if is_blank(value):
        return _fail("Value is required.")
    return PASSED


def check_allowed_values(value: Cell, prepared: PreparedRule, column: ColumnSnapshot) -> RuleOutcome:
    if is_blank(value):
        return PASSED
    allowed = prepared.compiled
    text = to_trimmed_string(value)
    if text in allowed:
        return PASSED
    return _fail(f"'{text}' is not an allowed value (allowed: {', '.join(allowed)}).")


def check_numeric_range(value: Cell, prepared: PreparedRule, column: ColumnSnapshot) -> RuleOutcome:
    if is_blank(value):
        return PASSED
    if prepared.error is not None:
        return _fail(str(prepared.error))

    text = to_trimmed_string(value)
    number = to_number(value)
    if number is None:
        return _fail(f"'{text}' is not a number.")

    low, high = prepared.compiled
    if number < low or number > high:
        return _fail(f"{text} is outside the range {low:g} to {high:g}.")
    return PASSED


def check_regex(value: Cell, prepared: PreparedRule, column: ColumnSnapshot) -> RuleOutcome:
    if is_blank(value):
        return PASSED
    if prepared.error is not None:
        return _fail(str(prepared.error))

    text = to_trimmed_string(value)
    if prepared.compiled.search(text) is None:
        return _fail(f"'{text}' does not match pattern {prepared.rule.pattern}.")
    return PASSED


def _is_before(moment: datetime, now: datetime) -> bool:
    # Aware values compare in UTC, naive values in the evaluation's local time
    if moment.tzinfo is not None:
        if now.tzinfo is None:
            now = now.astimezone(timezone.utc)
        return moment < now
    if now.tzinfo is not None:
        now = now.astimezone().replace(tzinfo=None)
    return moment < now


def check_date_past(value: Cell, prepared: PreparedRule, column: ColumnSnapshot) -> RuleOutcome:
    if is_blank(value):
        return PASSED

    text = to_trimmed_string(value)
    moment = to_date(value)
    if moment is None:
        return _fail(f"'{text}' is not a valid date.")
    if not _is_before(moment, prepared.now):
        return _fail(f"{text} is not in the past.")
    return PASSED


def check_unique(value: Cell, prepared: PreparedRule, column: ColumnSnapshot) -> RuleOutcome:
    if is_blank(value):
        return PASSED
    count = column.occurrences(value)
    if count > 1:
        return _fail(f"'{to_trimmed_string(value)}' appears {count} times in this column.")
    return PASSED


Evaluator = Callable[[Cell, PreparedRule, ColumnSnapshot], RuleOutcome]

EVALUATORS: Dict[RuleKind, Evaluator] = {
    RuleKind.REQUIRED: check_required,
    RuleKind.ALLOWED_VALUES: check_allowed_values,
    RuleKind.NUMERIC_RANGE: check_numeric_range,
    RuleKind.REGEX: check_regex,
    RuleKind.DATE_PAST: check_date_past,
    RuleKind.UNIQUE: check_unique,
}

RULE_TYPES = {
    RequiredRule: RuleKind.REQUIRED,
    AllowedValuesRule: RuleKind.ALLOWED_VALUES,
    NumericRangeRule: RuleKind.NUMERIC_RANGE,
    RegexRule: RuleKind.REGEX,
    DatePastRule: RuleKind.DATE_PAST,
    UniqueRule: RuleKind.UNIQUE,
}

# Every RuleKind needs both a rule type and an evaluator
_unhandled = (set(RuleKind) - set(EVALUATORS)) | (set(RuleKind) - set(RULE_TYPES.values()))
if _unhandled:
    raise RuntimeError(f"Rule kinds without an evaluator: {sorted(k.value for k in _unhandled)}")


def evaluate(value: Cell, rule: RuleDefinition, column: Optional[ColumnSnapshot] = None,
             now: Optional[datetime] = None) -> RuleOutcome:
    """
    Evaluate a single rule against a single cell.

    Convenience wrapper for callers outside the orchestrator; the
    orchestrator prepares each rule once per column instead.

    Args:
        value: Raw cell value
        rule: Rule definition
        column: Full column snapshot (needed by UNIQUE)
        now: Evaluation time used by DATE_PAST

    Returns:
        RuleOutcome for the cell
    """
    if column is None:
        column = ColumnSnapshot([value])
    return prepare_rule(rule, now).evaluate(value, column)
