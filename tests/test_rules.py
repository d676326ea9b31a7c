from datetime import datetime

import pytest

from models import (
    AllowedValuesRule,
    DatePastRule,
    NumericRangeRule,
    RegexRule,
    RequiredRule,
    RuleKind,
    UniqueRule,
)
from rules import EVALUATORS, ColumnSnapshot, evaluate, prepare_rule

NOW = datetime(2024, 6, 1)


def test_every_rule_kind_has_an_evaluator() -> None:
    assert set(EVALUATORS) == set(RuleKind)


def test_prepare_rule_rejects_unknown_rule_types() -> None:
    with pytest.raises(TypeError):
        prepare_rule(object())


def test_required() -> None:
    rule = RequiredRule()
    assert evaluate("a", rule).passed
    assert not evaluate("", rule).passed
    assert not evaluate("   ", rule).passed
    assert not evaluate(None, rule).passed
    assert evaluate(0, rule).passed


def test_allowed_values_is_case_sensitive_and_ignores_blanks() -> None:
    rule = AllowedValuesRule(("Yes", "No"))
    assert evaluate("Yes", rule).passed
    assert evaluate(" No ", rule).passed
    assert evaluate("", rule).passed
    outcome = evaluate("yes", rule)
    assert not outcome.passed
    assert "'yes' is not an allowed value" in outcome.reason


def test_numeric_range_bounds_are_inclusive() -> None:
    rule = NumericRangeRule(0, 100)
    assert evaluate(0, rule).passed
    assert evaluate(100, rule).passed
    assert evaluate("50", rule).passed
    assert evaluate(None, rule).passed
    assert not evaluate(-1, rule).passed
    assert not evaluate(101, rule).passed
    assert evaluate("abc", rule).reason == "'abc' is not a number."


def test_numeric_range_with_bad_bounds_fails_non_blank_cells() -> None:
    rule = NumericRangeRule("abc", None)
    assert evaluate(None, rule).passed
    outcome = evaluate("5", rule)
    assert not outcome.passed
    assert outcome.reason.startswith("Invalid numeric range bounds")


def test_numeric_range_with_inverted_bounds_is_a_parse_error() -> None:
    prepared = prepare_rule(NumericRangeRule(10, 1))
    assert prepared.error is not None


def test_regex_uses_search_semantics() -> None:
    assert evaluate("ab123cd", RegexRule(r"\d{3}")).passed
    assert not evaluate("ab123cd", RegexRule(r"^\d{3}$")).passed
    assert evaluate(" 12345 ", RegexRule(r"^\d{5}$")).passed
    assert evaluate("", RegexRule(r"^\d{5}$")).passed


def test_regex_with_invalid_pattern_fails_non_blank_cells() -> None:
    rule = RegexRule("([")
    assert evaluate("", rule).passed
    outcome = evaluate("anything", rule)
    assert not outcome.passed
    assert outcome.reason.startswith("Invalid regex pattern")


def test_date_past_is_strictly_before_now() -> None:
    rule = DatePastRule()
    assert evaluate("2024-01-01", rule, now=NOW).passed
    assert evaluate(datetime(2024, 5, 31, 23, 59), rule, now=NOW).passed
    assert not evaluate("2024-06-01", rule, now=NOW).passed
    assert not evaluate("2030-01-01", rule, now=NOW).passed
    assert evaluate("", rule, now=NOW).passed


def test_date_past_reports_unparsable_dates() -> None:
    outcome = evaluate("not a date", DatePastRule(), now=NOW)
    assert not outcome.passed
    assert outcome.reason == "'not a date' is not a valid date."


def test_date_past_compares_aware_dates() -> None:
    assert evaluate("2024-01-01T00:00:00Z", DatePastRule(), now=NOW).passed
    assert not evaluate("2031-01-01T00:00:00+02:00", DatePastRule(), now=NOW).passed


def test_unique_flags_every_duplicate_occurrence() -> None:
    column = ColumnSnapshot(["X", "Y", "X ", "Z", "", None, ""])
    rule = UniqueRule()
    verdicts = [evaluate(value, rule, column).passed for value in column.values]
    assert verdicts == [False, True, False, True, True, True, True]


def test_column_snapshot_builds_counts_once() -> None:
    column = ColumnSnapshot(["a", "a", "b"])
    assert column.counts is column.counts
    assert column.occurrences(" a ") == 2
    assert column.occurrences("c") == 0


def test_allowed_values_entries_are_trimmed() -> None:
    rule = AllowedValuesRule((" Yes", "No  "))
    assert evaluate("Yes", rule).passed
    assert evaluate("No", rule).passed
    assert not evaluate("Maybe", rule).passed
