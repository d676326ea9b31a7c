"""Data models for data dictionaries, validation runs and reconciliation."""

from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List, Optional, Tuple, Union
from enum import Enum


# A raw spreadsheet cell: str, int, float, bool, date/datetime or None (blank)
Cell = Any
Row = List[Cell]


class RuleKind(Enum):
    """Kinds of validation rule a data dictionary column can carry."""
    REQUIRED = "REQUIRED"
    ALLOWED_VALUES = "ALLOWED_VALUES"
    NUMERIC_RANGE = "NUMERIC_RANGE"
    REGEX = "REGEX"
    DATE_PAST = "DATE_PAST"
    UNIQUE = "UNIQUE"


@dataclass(frozen=True)
class RequiredRule:
    """Cell must not be blank."""
    kind: ClassVar[RuleKind] = RuleKind.REQUIRED
    failure_message: Optional[str] = None


@dataclass(frozen=True)
class AllowedValuesRule:
    """Non-blank cell must exactly match one of the allowed values (case-sensitive)."""
    kind: ClassVar[RuleKind] = RuleKind.ALLOWED_VALUES
    allowed_values: Tuple[str, ...] = ()
    failure_message: Optional[str] = None


@dataclass(frozen=True)
class NumericRangeRule:
    """Non-blank cell must be a number within [min_value, max_value]."""
    kind: ClassVar[RuleKind] = RuleKind.NUMERIC_RANGE
    # Bounds are kept as given and validated when the rule is prepared
    min_value: Any = None
    max_value: Any = None
    failure_message: Optional[str] = None


@dataclass(frozen=True)
class RegexRule:
    """Non-blank cell text must contain a match for the pattern (re.search)."""
    kind: ClassVar[RuleKind] = RuleKind.REGEX
    pattern: str = ""
    failure_message: Optional[str] = None


@dataclass(frozen=True)
class DatePastRule:
    """Non-blank cell must be a date strictly before the evaluation time."""
    kind: ClassVar[RuleKind] = RuleKind.DATE_PAST
    failure_message: Optional[str] = None


@dataclass(frozen=True)
class UniqueRule:
    """Non-blank trimmed values must not repeat within the column."""
    kind: ClassVar[RuleKind] = RuleKind.UNIQUE
    failure_message: Optional[str] = None


RuleDefinition = Union[
    RequiredRule,
    AllowedValuesRule,
    NumericRangeRule,
    RegexRule,
    DatePastRule,
    UniqueRule,
]


@dataclass
class ColumnRuleSet:
    """Ordered rules attached to one column name."""
    column_name: str
    rules: List[RuleDefinition] = field(default_factory=list)


@dataclass
class DataDictionary:
    """Named, organization-scoped collection of column rule sets."""
    name: str
    columns: List[ColumnRuleSet] = field(default_factory=list)
    organization: Optional[str] = None

    def column(self, column_name: str) -> Optional[ColumnRuleSet]:
        """Return the rule set for a column name, if any."""
        for rule_set in self.columns:
            if rule_set.column_name == column_name:
                return rule_set
        return None


@dataclass
class Sheet:
    """One grid of cells; rows[0] is the header row."""
    name: str
    rows: List[Row] = field(default_factory=list)

    @property
    def header(self) -> Row:
        return self.rows[0] if self.rows else []

    @property
    def data_rows(self) -> List[Row]:
        return self.rows[1:]


@dataclass
class Workbook:
    """Ordered list of sheets."""
    sheets: List[Sheet] = field(default_factory=list)

    @property
    def sheet_names(self) -> List[str]:
        return [sheet.name for sheet in self.sheets]


@dataclass(frozen=True)
class ValidationIssue:
    """A single rule violation for one cell."""
    sheet: str
    row_index: int
    column_name: str
    rule_kind: RuleKind
    value: Cell
    message: str


@dataclass
class SheetSummary:
    """Row counts for one validated sheet."""
    checked: int = 0
    failed: int = 0

    @property
    def passed(self) -> int:
        """Rows checked without any issue."""
        return self.checked - self.failed


@dataclass
class ValidationRun:
    """Issues and per-sheet summaries produced by one validate() call."""
    issues: List[ValidationIssue] = field(default_factory=list)
    sheet_summaries: Dict[str, SheetSummary] = field(default_factory=dict)

    @property
    def total_issues(self) -> int:
        return len(self.issues)

    @property
    def total_checked(self) -> int:
        return sum(summary.checked for summary in self.sheet_summaries.values())

    @property
    def total_failed(self) -> int:
        return sum(summary.failed for summary in self.sheet_summaries.values())

    @property
    def passed(self) -> bool:
        """True when no issue was found in any sheet."""
        return not self.issues


@dataclass
class ReconRequest:
    """Inputs for a reconciliation run."""
    source_rows: List[Row]
    target_rows: List[Row]
    key_column: str
    value_column: str
    output_column: str = "Check Number"


@dataclass
class ReconSummary:
    """Summary counts for a reconciliation run."""
    indexed_keys: int = 0
    duplicate_keys: int = 0
    skipped_source_rows: int = 0
    matched_rows: int = 0
    unmatched_rows: int = 0
    blank_key_rows: int = 0

    @property
    def total_rows(self) -> int:
        """Target data rows processed."""
        return self.matched_rows + self.unmatched_rows + self.blank_key_rows


@dataclass
class MergedTable:
    """Target rows with the looked-up value column filled in."""
    header: Row
    rows: List[Row]
    summary: ReconSummary = field(default_factory=ReconSummary)
    output_column_index: int = -1

    def as_rows(self) -> List[Row]:
        """Header row followed by all data rows."""
        return [list(self.header)] + [list(row) for row in self.rows]


@dataclass
class ReportSheet:
    """Exportable sheet: a name, a header row and data rows."""
    name: str
    header: List[str]
    rows: List[Row] = field(default_factory=list)


@dataclass
class ReportWorkbook:
    """Exportable workbook handed to file writers and HTTP responses."""
    sheets: List[ReportSheet] = field(default_factory=list)
