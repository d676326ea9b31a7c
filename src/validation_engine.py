"""Data dictionary validation engine."""

import logging
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from coercion import to_trimmed_string
from errors import MalformedInputError
from models import (
    ColumnRuleSet,
    DataDictionary,
    Row,
    Sheet,
    SheetSummary,
    ValidationIssue,
    ValidationRun,
    Workbook,
)
from rules import ColumnSnapshot, prepare_rule

logger = logging.getLogger(__name__)


class RunState(Enum):
    """Stages of a validation run."""
    IDLE = "idle"
    PER_SHEET = "per_sheet"
    PER_COLUMN = "per_column"
    PER_RULE = "per_rule"
    PER_ROW = "per_row"
    AGGREGATE = "aggregate"
    DONE = "done"


def build_header_index(header: Row) -> Dict[str, int]:
    """
    Map trimmed header names to column positions.

    Blank header cells are skipped. When a name repeats, the first
    occurrence wins.
    """
    index: Dict[str, int] = {}
    for position, cell in enumerate(header):
        name = to_trimmed_string(cell)
        if name and name not in index:
            index[name] = position
    return index


def column_values(rows: List[Row], position: int) -> List:
    """Values at a column position; short rows yield None."""
    return [row[position] if position < len(row) else None for row in rows]


class ValidationEngine:
    """
    Runs a data dictionary against every sheet of a workbook.

    One engine instance handles one run. Issues are ordered by sheet, then
    data row, then dictionary column and rule order.
    """

    def __init__(self, dictionary: DataDictionary, now: Optional[datetime] = None):
        """
        Initialize the engine for a single run.

        Args:
            dictionary: Column rule sets to apply
            now: Evaluation time for DATE_PAST rules (captured once per run)
        """
        if dictionary is None:
            raise MalformedInputError("A data dictionary is required")
        self.dictionary = dictionary
        self.now = now or datetime.now()
        self.state = RunState.IDLE

    def _enter(self, state: RunState):
        self.state = state

    def run(self, workbook: Workbook) -> ValidationRun:
        """
        Validate every sheet of the workbook.

        Args:
            workbook: Parsed workbook; each sheet's first row is its header

        Returns:
            ValidationRun with ordered issues and per-sheet summaries

        Raises:
            MalformedInputError: If the workbook has no sheets or a sheet has no header row
        """
        if workbook is None or not workbook.sheets:
            raise MalformedInputError("Workbook contains no sheets")
        for sheet in workbook.sheets:
            if not sheet.rows:
                raise MalformedInputError(f"Sheet '{sheet.name}' has no header row")

        result = ValidationRun()
        for sheet in workbook.sheets:
            self._enter(RunState.PER_SHEET)
            issues, summary = self.validate_sheet(sheet)
            result.issues.extend(issues)
            result.sheet_summaries[sheet.name] = summary

        self._enter(RunState.DONE)
        logger.debug(
            "Validated %d sheet(s) against '%s': %d issue(s)",
            len(workbook.sheets), self.dictionary.name, len(result.issues)
        )
        return result

    def validate_sheet(self, sheet: Sheet):
        """
        Validate one sheet.

        Returns:
            Tuple of (issues, SheetSummary)
        """
        header_index = build_header_index(sheet.header)
        data_rows = sheet.data_rows

        # Issues are collected per data row, so the final order is row-major
        # no matter how columns are walked.
        row_issues: List[List[ValidationIssue]] = [[] for _ in data_rows]
        matched_columns = 0

        for rule_set in self.dictionary.columns:
            position = header_index.get(rule_set.column_name.strip())
            if position is None:
                # Dictionaries may describe more columns than any one file has
                continue
            matched_columns += 1
            self._enter(RunState.PER_COLUMN)
            self._validate_column(sheet.name, rule_set, data_rows, position, row_issues)

        self._enter(RunState.AGGREGATE)
        issues = [issue for bucket in row_issues for issue in bucket]
        summary = SheetSummary(
            checked=len(data_rows) if matched_columns else 0,
            failed=sum(1 for bucket in row_issues if bucket),
        )
        return issues, summary

    def _validate_column(
        self,
        sheet_name: str,
        rule_set: ColumnRuleSet,
        data_rows: List[Row],
        position: int,
        row_issues: List[List[ValidationIssue]]
    ):
        column = ColumnSnapshot(column_values(data_rows, position))

        for rule in rule_set.rules:
            self._enter(RunState.PER_RULE)
            prepared = prepare_rule(rule, self.now)

            self._enter(RunState.PER_ROW)
            for offset, value in enumerate(column.values):
                outcome = prepared.evaluate(value, column)
                if outcome.passed:
                    continue
                row_issues[offset].append(ValidationIssue(
                    sheet=sheet_name,
                    row_index=offset + 1,
                    column_name=rule_set.column_name,
                    rule_kind=rule.kind,
                    value=value,
                    message=rule.failure_message or outcome.reason,
                ))


def validate(
    dictionary: DataDictionary,
    workbook: Workbook,
    now: Optional[datetime] = None
) -> ValidationRun:
    """
    Validate a workbook against a data dictionary.

    Inputs are not modified.

    Args:
        dictionary: Column rule sets
        workbook: Parsed workbook
        now: Evaluation time for DATE_PAST rules

    Returns:
        ValidationRun with issues and per-sheet summaries
    """
    return ValidationEngine(dictionary, now=now).run(workbook)
