import pytest

from dictionary import dictionary_to_records, parse_dictionary, parse_numeric_range
from errors import MalformedInputError
from models import (
    AllowedValuesRule,
    NumericRangeRule,
    RegexRule,
    RequiredRule,
    RuleKind,
    Sheet,
    Workbook,
)
from validation_engine import validate


def record(column, kind, value="", message=""):
    return {
        "Column Name": column,
        "Validation Type": kind,
        "Validation Value": value,
        "Failure Message": message,
    }


def test_parse_dictionary_groups_rules_by_column_in_order() -> None:
    result = parse_dictionary("Lag Report", [
        record("Claim Number", "REQUIRED"),
        record("Status", "ALLOWED_VALUES", "Open, Closed ,,Pending"),
        record(" Claim Number ", "UNIQUE", message="Duplicate claim"),
        record("Notes", ""),
    ], organization="acme")

    assert result.name == "Lag Report"
    assert result.organization == "acme"
    assert [c.column_name for c in result.columns] == ["Claim Number", "Status"]
    assert [r.kind for r in result.column("Claim Number").rules] == [RuleKind.REQUIRED, RuleKind.UNIQUE]
    assert result.column("Claim Number").rules[1].failure_message == "Duplicate claim"
    assert result.column("Status").rules == [AllowedValuesRule(("Open", "Closed", "Pending"))]


def test_validation_type_is_case_insensitive() -> None:
    result = parse_dictionary("d", [record("A", "required")])
    assert result.columns[0].rules == [RequiredRule()]


def test_numeric_range_text() -> None:
    assert parse_numeric_range("0-100") == (0.0, 100.0)
    assert parse_numeric_range(" -10 - -1 ") == (-10.0, -1.0)
    assert parse_numeric_range("1.5-2.5") == (1.5, 2.5)
    assert parse_numeric_range("ten to twenty") == ("ten to twenty", None)


def test_unparsable_range_is_reported_during_validation() -> None:
    rules = parse_dictionary("d", [record("Amount", "NUMERIC_RANGE", "low-high")])
    assert rules.columns[0].rules == [NumericRangeRule("low-high", None)]

    run = validate(rules, Workbook(sheets=[Sheet("S", [["Amount"], ["5"], [""]])]))
    assert len(run.issues) == 1
    assert run.issues[0].message.startswith("Invalid numeric range bounds")


def test_regex_value_is_the_pattern() -> None:
    rules = parse_dictionary("d", [record("Zip", "REGEX", r"^\d{5}$")])
    assert rules.columns[0].rules == [RegexRule(r"^\d{5}$")]


def test_unknown_validation_type_is_rejected() -> None:
    with pytest.raises(MalformedInputError, match="Unknown validation type 'REQUIRD'"):
        parse_dictionary("d", [record("A", "REQUIRD")])


def test_missing_name_or_rules_is_rejected() -> None:
    with pytest.raises(MalformedInputError):
        parse_dictionary("", [record("A", "REQUIRED")])
    with pytest.raises(MalformedInputError):
        parse_dictionary("d", None)
    with pytest.raises(MalformedInputError):
        parse_dictionary("d", ["not a record"])


def test_dictionary_to_records_restores_builder_records() -> None:
    records = [
        record("Status", "ALLOWED_VALUES", "Open,Closed", "Bad status"),
        record("Amount", "NUMERIC_RANGE", "0-100"),
        record("Zip", "REGEX", r"^\d{5}$"),
        record("Date", "DATE_PAST"),
    ]
    assert dictionary_to_records(parse_dictionary("d", records)) == records
