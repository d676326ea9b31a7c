"""Report serialization and export utilities."""

import io
import os
import re
from typing import List, Optional, Union

import duckdb
import openpyxl
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE

from coercion import format_cell
from models import MergedTable, ReportSheet, ReportWorkbook, Row, ValidationRun


VALIDATION_REPORT_HEADER = ["Sheet", "Row", "Column", "Rule", "Message"]
SUMMARY_HEADER = ["Sheet", "Rows Checked", "Rows Passed", "Rows Failed"]

DEFAULT_REPORT_SHEET = "Validation Report"
DEFAULT_MERGED_SHEET = "Merged Lag Report"

# Characters Excel rejects in worksheet titles
INVALID_TITLE_CHARS = re.compile(r"[\[\]:*?/\\]")


def sheet_title(name: str) -> str:
    """Normalize a sheet name into a valid Excel worksheet title."""
    cleaned = INVALID_TITLE_CHARS.sub(" ", name or "").strip()
    return (cleaned or "Sheet")[:31]


def serialize_validation_run(run: ValidationRun, sheet_name: str = DEFAULT_REPORT_SHEET) -> ReportSheet:
    """
    One report row per issue, in issue order.

    Args:
        run: Result of validate()
        sheet_name: Name of the report sheet

    Returns:
        ReportSheet with Sheet/Row/Column/Rule/Message columns
    """
    rows = [
        [issue.sheet, issue.row_index, issue.column_name, issue.rule_kind.value, issue.message]
        for issue in run.issues
    ]
    return ReportSheet(name=sheet_name, header=list(VALIDATION_REPORT_HEADER), rows=rows)


def serialize_validation_summary(run: ValidationRun, sheet_name: str = "Summary") -> ReportSheet:
    """Per-sheet row counts followed by a total row."""
    rows = [
        [name, summary.checked, summary.passed, summary.failed]
        for name, summary in run.sheet_summaries.items()
    ]
    rows.append(["Total", run.total_checked, run.total_checked - run.total_failed, run.total_failed])
    return ReportSheet(name=sheet_name, header=list(SUMMARY_HEADER), rows=rows)


def serialize_merged_table(table: MergedTable, sheet_name: str = DEFAULT_MERGED_SHEET) -> ReportSheet:
    """Merged header and data rows as a report sheet."""
    header = [format_cell(cell) for cell in table.header]
    return ReportSheet(name=sheet_name, header=header, rows=[list(row) for row in table.rows])


def build_validation_report(
    run: ValidationRun,
    sheet_name: str = DEFAULT_REPORT_SHEET,
    include_summary: bool = False
) -> ReportWorkbook:
    """Workbook with the issue sheet and, optionally, a summary sheet."""
    sheets = [serialize_validation_run(run, sheet_name)]
    if include_summary:
        sheets.append(serialize_validation_summary(run))
    return ReportWorkbook(sheets=sheets)


def build_merged_report(table: MergedTable, sheet_name: str = DEFAULT_MERGED_SHEET) -> ReportWorkbook:
    """Workbook with the single merged sheet."""
    return ReportWorkbook(sheets=[serialize_merged_table(table, sheet_name)])


class Exporter:
    """Writes report workbooks to xlsx and csv files."""

    # Friendly file names for the two report types
    REPORT_FILE_NAMES = {
        "validation": "validation_report.xlsx",
        "merged": "merged_lag_report.xlsx",
    }

    def __init__(self, creator: str = "Data Toolkit"):
        """
        Initialize the exporter.

        Args:
            creator: Author recorded in xlsx document properties
        """
        self.creator = creator

    def to_openpyxl(self, report: ReportWorkbook) -> openpyxl.Workbook:
        """Build an in-memory openpyxl workbook from a report."""
        workbook = openpyxl.Workbook()
        workbook.remove(workbook.active)
        workbook.properties.creator = self.creator
        workbook.properties.lastModifiedBy = self.creator

        used_titles = set()
        for report_sheet in report.sheets:
            title = sheet_title(report_sheet.name)
            # Titles must be unique within a workbook
            suffix = 2
            while title.lower() in used_titles:
                base = sheet_title(report_sheet.name)[:28]
                title = f"{base} {suffix}"
                suffix += 1
            used_titles.add(title.lower())

            worksheet = workbook.create_sheet(title=title)
            rows = [report_sheet.header] + list(report_sheet.rows)
            for row_number, row in enumerate(rows, start=1):
                self.write_row(worksheet, row_number, row)
        return workbook

    @staticmethod
    def write_row(worksheet, row_number: int, row: Row):
        """
        Write one row of cell values as literal data.

        Strings starting with '=' are stored as text rather than formulas,
        and characters the xlsx format cannot hold are dropped.
        """
        for column_number, value in enumerate(row, start=1):
            if isinstance(value, str):
                value = ILLEGAL_CHARACTERS_RE.sub("", value)
            cell = worksheet.cell(row=row_number, column=column_number, value=value)
            if isinstance(value, str) and value.startswith("="):
                cell.data_type = "s"

    def to_xlsx_bytes(self, report: ReportWorkbook) -> bytes:
        """Serialize a report to xlsx bytes (for HTTP responses)."""
        buffer = io.BytesIO()
        workbook = self.to_openpyxl(report)
        workbook.save(buffer)
        workbook.close()
        return buffer.getvalue()

    def export_xlsx(self, report: ReportWorkbook, output_path: str) -> str:
        """
        Write a report workbook to an xlsx file.

        Args:
            report: Report to write
            output_path: Destination file path

        Returns:
            Path to the exported file
        """
        parent = os.path.dirname(output_path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        workbook = self.to_openpyxl(report)
        try:
            workbook.save(output_path)
        finally:
            workbook.close()
        return output_path

    def export_csv(self, report_sheet: ReportSheet, output_path: str) -> int:
        """
        Write one report sheet to CSV.

        Args:
            report_sheet: Sheet to write (header first)
            output_path: Destination file path

        Returns:
            Number of data rows exported
        """
        parent = os.path.dirname(output_path)
        if parent:
            os.makedirs(parent, exist_ok=True)

        rows: List[Row] = [list(report_sheet.header)] + [list(row) for row in report_sheet.rows]
        width = max(len(row) for row in rows) or 1
        columns = [f"c{i}" for i in range(width)]

        conn = duckdb.connect(":memory:")
        try:
            # Header names may repeat or be blank, so the header goes in as
            # the first data row of a positional VARCHAR table.
            column_defs = ", ".join(f"{name} VARCHAR" for name in columns)
            conn.execute(f"CREATE TABLE report (row_no INTEGER, {column_defs})")

            placeholders = ", ".join("?" for _ in range(width + 1))
            conn.executemany(
                f"INSERT INTO report VALUES ({placeholders})",
                [
                    [row_no] + [format_cell(cell) for cell in row] + [""] * (width - len(row))
                    for row_no, row in enumerate(rows)
                ]
            )

            escaped_path = output_path.replace("'", "''")
            conn.execute(f"""
                COPY (SELECT {", ".join(columns)} FROM report ORDER BY row_no)
                TO '{escaped_path}' (HEADER false, DELIMITER ',')
            """)
        finally:
            conn.close()

        return len(report_sheet.rows)

    def export(self, report: ReportWorkbook, output_path: str) -> str:
        """
        Write a report using the format implied by the file extension.

        CSV output contains only the first sheet.
        """
        if output_path.lower().endswith(".csv"):
            self.export_csv(report.sheets[0], output_path)
            return output_path
        return self.export_xlsx(report, output_path)


ReportSource = Union[ValidationRun, MergedTable]


def build_report(source: ReportSource, sheet_name: Optional[str] = None) -> ReportWorkbook:
    """Build the report workbook for either a validation run or a merged table."""
    if isinstance(source, ValidationRun):
        return build_validation_report(source, sheet_name or DEFAULT_REPORT_SHEET)
    if isinstance(source, MergedTable):
        return build_merged_report(source, sheet_name or DEFAULT_MERGED_SHEET)
    raise TypeError(f"Cannot build a report from {type(source).__name__}")
