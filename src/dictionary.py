"""Conversion between stored data dictionary records and DataDictionary models."""

import re
from typing import Any, Dict, Iterable, List, Optional

from coercion import format_cell, to_trimmed_string
from errors import MalformedInputError
from models import (
    AllowedValuesRule,
    ColumnRuleSet,
    DataDictionary,
    DatePastRule,
    NumericRangeRule,
    RegexRule,
    RequiredRule,
    RuleDefinition,
    RuleKind,
    UniqueRule,
)


# Record keys written by the dictionary builder
COLUMN_NAME = "Column Name"
VALIDATION_TYPE = "Validation Type"
VALIDATION_VALUE = "Validation Value"
FAILURE_MESSAGE = "Failure Message"

# "min-max", where either side may be negative: "0-100", "-5-5", "-10--1"
RANGE_PATTERN = re.compile(
    r"^\s*([+-]?\d+(?:\.\d+)?)\s*-\s*([+-]?\d+(?:\.\d+)?)\s*$"
)


def parse_allowed_values(text: str) -> tuple:
    """Split a comma-separated list, trimming entries and dropping empties."""
    return tuple(part.strip() for part in text.split(",") if part.strip())


def parse_numeric_range(text: str):
    """
    Parse "min-max" bounds.

    Unparsable text is kept as the min bound with no max bound, so the
    rule reports it when evaluated instead of failing the whole dictionary.

    Returns:
        Tuple of (min_value, max_value)
    """
    match = RANGE_PATTERN.match(text)
    if not match:
        return text, None
    return float(match.group(1)), float(match.group(2))


def build_rule(kind: RuleKind, value: str, message: Optional[str]) -> RuleDefinition:
    """Create the rule variant for a kind from its stored value text."""
    if kind is RuleKind.REQUIRED:
        return RequiredRule(failure_message=message)
    if kind is RuleKind.ALLOWED_VALUES:
        return AllowedValuesRule(parse_allowed_values(value), failure_message=message)
    if kind is RuleKind.NUMERIC_RANGE:
        low, high = parse_numeric_range(value)
        return NumericRangeRule(low, high, failure_message=message)
    if kind is RuleKind.REGEX:
        return RegexRule(value, failure_message=message)
    if kind is RuleKind.DATE_PAST:
        return DatePastRule(failure_message=message)
    if kind is RuleKind.UNIQUE:
        return UniqueRule(failure_message=message)
    raise MalformedInputError(f"Unsupported validation type: {kind}")


def parse_dictionary(
    name: str,
    records: Iterable[Dict[str, Any]],
    organization: Optional[str] = None
) -> DataDictionary:
    """
    Build a DataDictionary from builder records.

    Args:
        name: Dictionary name (required)
        records: Dicts with "Column Name", "Validation Type",
            "Validation Value" and "Failure Message" keys
        organization: Owning organization, if known

    Returns:
        DataDictionary with columns in first-appearance order

    Raises:
        MalformedInputError: If the name is missing, a record is not a dict
            or names an unknown validation type
    """
    if not name or not str(name).strip():
        raise MalformedInputError("Data dictionary name is required")
    if records is None:
        raise MalformedInputError("Data dictionary rules are required")

    columns: Dict[str, ColumnRuleSet] = {}
    for position, record in enumerate(records, start=1):
        if not isinstance(record, dict):
            raise MalformedInputError(f"Rule {position} is not an object")

        column_name = to_trimmed_string(record.get(COLUMN_NAME))
        if not column_name:
            continue

        type_name = to_trimmed_string(record.get(VALIDATION_TYPE)).upper()
        if not type_name:
            # "None" in the builder; the column has no rule
            continue
        try:
            kind = RuleKind(type_name)
        except ValueError:
            raise MalformedInputError(
                f"Unknown validation type '{type_name}' for column '{column_name}'"
            ) from None

        value = format_cell(record.get(VALIDATION_VALUE))
        message = to_trimmed_string(record.get(FAILURE_MESSAGE)) or None

        rule_set = columns.setdefault(column_name, ColumnRuleSet(column_name))
        rule_set.rules.append(build_rule(kind, value, message))

    return DataDictionary(
        name=str(name).strip(),
        columns=list(columns.values()),
        organization=organization,
    )


def _rule_value(rule: RuleDefinition) -> str:
    if isinstance(rule, AllowedValuesRule):
        return ",".join(rule.allowed_values)
    if isinstance(rule, NumericRangeRule):
        if rule.max_value is None and isinstance(rule.min_value, str):
            return rule.min_value
        return f"{format_cell(rule.min_value)}-{format_cell(rule.max_value)}"
    if isinstance(rule, RegexRule):
        return rule.pattern
    return ""


def dictionary_to_records(dictionary: DataDictionary) -> List[Dict[str, str]]:
    """Flatten a DataDictionary back into builder records."""
    records = []
    for rule_set in dictionary.columns:
        for rule in rule_set.rules:
            records.append({
                COLUMN_NAME: rule_set.column_name,
                VALIDATION_TYPE: rule.kind.value,
                VALIDATION_VALUE: _rule_value(rule),
                FAILURE_MESSAGE: rule.failure_message or "",
            })
    return records
