"""Key-index reconciliation engine."""

import logging
from typing import Dict, List, Optional

from coercion import is_blank, to_trimmed_string
from errors import HeaderNotFoundError, MalformedInputError
from models import Cell, MergedTable, ReconRequest, ReconSummary, Row
from validation_engine import build_header_index

logger = logging.getLogger(__name__)

SOURCE_TABLE = "source report"
TARGET_TABLE = "target report"


class KeyIndex:
    """
    Maps trimmed business keys to the first value seen for them.

    Later rows with an already indexed key are counted as duplicates and
    otherwise ignored (first wins).
    """

    def __init__(self):
        self._values: Dict[str, Cell] = {}
        self.duplicates = 0
        self.skipped = 0

    def __len__(self) -> int:
        return len(self._values)

    def add(self, key: Cell, value: Cell) -> bool:
        """
        Index a value under a key unless the key is blank or already present.

        Returns:
            True if the value was indexed
        """
        if is_blank(key):
            self.skipped += 1
            return False
        normalized = to_trimmed_string(key)
        if normalized in self._values:
            self.duplicates += 1
            return False
        self._values[normalized] = value
        return True

    def lookup(self, key: Cell) -> Optional[Cell]:
        """Value for a key, or None when the key is blank or unknown."""
        if is_blank(key):
            return None
        return self._values.get(to_trimmed_string(key))

    def has_key(self, key: Cell) -> bool:
        return not is_blank(key) and to_trimmed_string(key) in self._values


class ReconEngine:
    """Copies a value column from a source report into a target report by key."""

    def __init__(self, source_name: str = SOURCE_TABLE, target_name: str = TARGET_TABLE):
        """
        Initialize the engine.

        Args:
            source_name: Table name used in error messages for the source report
            target_name: Table name used in error messages for the target report
        """
        self.source_name = source_name
        self.target_name = target_name

    @staticmethod
    def find_column(header: Row, column_name: str, table_name: str) -> int:
        """
        Position of a column in a header row.

        Raises:
            HeaderNotFoundError: If the header is absent
        """
        position = build_header_index(header).get(column_name.strip())
        if position is None:
            raise HeaderNotFoundError(column_name, table_name)
        return position

    def build_index(self, source_rows: List[Row], key_column: str, value_column: str) -> KeyIndex:
        """
        Build the key index from the source report.

        Args:
            source_rows: Header row followed by data rows
            key_column: Header of the business key column
            value_column: Header of the value to copy

        Returns:
            KeyIndex of trimmed key to first-seen raw value
        """
        header = source_rows[0]
        key_pos = self.find_column(header, key_column, self.source_name)
        value_pos = self.find_column(header, value_column, self.source_name)

        index = KeyIndex()
        for row in source_rows[1:]:
            key = row[key_pos] if key_pos < len(row) else None
            value = row[value_pos] if value_pos < len(row) else None
            index.add(key, value)

        logger.debug(
            "Indexed %d key(s) from %s (%d duplicate, %d blank)",
            len(index), self.source_name, index.duplicates, index.skipped
        )
        return index

    def merge(self, target_rows: List[Row], key_column: str, index: KeyIndex,
              output_column: str) -> MergedTable:
        """
        Fill the output column of every target row from the key index.

        The output column is reused when the target header already has it,
        otherwise it is appended. Short rows are padded with empty strings.
        """
        header = list(target_rows[0])
        key_pos = self.find_column(header, key_column, self.target_name)

        output_pos = build_header_index(header).get(output_column.strip())
        if output_pos is None:
            header.append(output_column)
            output_pos = len(header) - 1

        summary = ReconSummary(
            indexed_keys=len(index),
            duplicate_keys=index.duplicates,
            skipped_source_rows=index.skipped,
        )
        merged: List[Row] = []
        for source_row in target_rows[1:]:
            row = list(source_row)
            key = row[key_pos] if key_pos < len(row) else None

            if is_blank(key):
                resolved = ""
                summary.blank_key_rows += 1
            elif index.has_key(key):
                resolved = index.lookup(key)
                if resolved is None:
                    resolved = ""
                summary.matched_rows += 1
            else:
                resolved = ""
                summary.unmatched_rows += 1

            while len(row) <= output_pos:
                row.append("")
            row[output_pos] = resolved
            merged.append(row)

        return MergedTable(header=header, rows=merged, summary=summary,
                           output_column_index=output_pos)

    def reconcile(self, request: ReconRequest) -> MergedTable:
        """
        Run a reconciliation.

        Args:
            request: Source/target rows and the key, value and output column names

        Returns:
            MergedTable built from the target report

        Raises:
            MalformedInputError: If a required field or header row is missing
            HeaderNotFoundError: If a named column is absent from a header row
        """
        if request is None:
            raise MalformedInputError("A reconciliation request is required")
        if not request.key_column or not str(request.key_column).strip():
            raise MalformedInputError("Key column name is required")
        if not request.value_column or not str(request.value_column).strip():
            raise MalformedInputError("Value column name is required")
        if not request.output_column or not str(request.output_column).strip():
            raise MalformedInputError("Output column name is required")
        if not request.source_rows:
            raise MalformedInputError(f"The {self.source_name} has no header row")
        if not request.target_rows:
            raise MalformedInputError(f"The {self.target_name} has no header row")

        index = self.build_index(request.source_rows, request.key_column, request.value_column)
        table = self.merge(request.target_rows, request.key_column, index, request.output_column)

        logger.debug(
            "Reconciled %d row(s): %d matched, %d unmatched, %d blank key",
            table.summary.total_rows, table.summary.matched_rows,
            table.summary.unmatched_rows, table.summary.blank_key_rows
        )
        return table


def reconcile(request: ReconRequest) -> MergedTable:
    """Reconcile two reports; see ReconEngine.reconcile."""
    return ReconEngine().reconcile(request)
