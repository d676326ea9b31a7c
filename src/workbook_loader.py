"""Load spreadsheet files into Workbook models."""

import logging
from pathlib import Path
from typing import List, Optional

import duckdb
import openpyxl

from coercion import is_blank
from errors import MalformedInputError
from models import Row, Sheet, Workbook

logger = logging.getLogger(__name__)

EXCEL_SUFFIXES = {".xlsx", ".xlsm"}
CSV_SUFFIXES = {".csv"}


def trim_trailing_blank_rows(rows: List[Row]) -> List[Row]:
    """Drop fully blank rows from the end of a sheet."""
    end = len(rows)
    while end and all(is_blank(cell) for cell in rows[end - 1]):
        end -= 1
    return rows[:end]


def read_csv_rows(path: Path) -> List[Row]:
    """
    Read a CSV file as raw rows, header included.

    DuckDB's CSV reader is run with header detection off and every column
    as VARCHAR, so duplicate or blank header names survive untouched.
    """
    conn = duckdb.connect(":memory:")
    try:
        escaped = str(path).replace("'", "''")
        rows = conn.execute(f"""
            SELECT * FROM read_csv(
                '{escaped}', header=false, all_varchar=true,
                delim=',', quote='"', escape='"', null_padding=true
            )
        """).fetchall()
    except duckdb.Error as e:
        raise MalformedInputError(f"Could not read '{path.name}': {e}") from e
    finally:
        conn.close()
    return [list(row) for row in rows]


def read_excel_sheets(path: Path) -> List[Sheet]:
    """Read every non-empty worksheet of an xlsx file, in workbook order."""
    try:
        workbook = openpyxl.load_workbook(path, read_only=True, data_only=True)
    except Exception as e:
        # openpyxl raises zipfile/KeyError/InvalidFileException for bad files
        raise MalformedInputError(f"Could not read '{path.name}': {e}") from e

    try:
        sheets = []
        for worksheet in workbook.worksheets:
            rows = trim_trailing_blank_rows(
                [list(row) for row in worksheet.iter_rows(values_only=True)]
            )
            if not rows:
                logger.debug("Skipping empty worksheet %s", worksheet.title)
                continue
            sheets.append(Sheet(name=worksheet.title, rows=rows))
        return sheets
    finally:
        workbook.close()


def load_workbook(path) -> Workbook:
    """
    Parse a spreadsheet file into a Workbook.

    Args:
        path: Path to a .xlsx/.xlsm or .csv file

    Returns:
        Workbook with one Sheet per worksheet (CSV files give one sheet
        named after the file)

    Raises:
        MalformedInputError: If the file type is unsupported or the file
            has no rows at all
    """
    path = Path(path)
    suffix = path.suffix.lower()

    if suffix in EXCEL_SUFFIXES:
        sheets = read_excel_sheets(path)
    elif suffix in CSV_SUFFIXES:
        rows = trim_trailing_blank_rows(read_csv_rows(path))
        sheets = [Sheet(name=path.stem, rows=rows)]
    else:
        raise MalformedInputError(f"Unsupported file type '{suffix or path.name}'")

    if not sheets or not any(sheet.rows for sheet in sheets):
        raise MalformedInputError(f"Input file '{path.name}' is empty")

    logger.debug("Loaded %s: %s", path.name, ", ".join(
        f"{sheet.name} ({len(sheet.rows)} rows)" for sheet in sheets
    ))
    return Workbook(sheets=sheets)


def load_table(path, sheet: Optional[str] = None) -> List[Row]:
    """
    Rows (header first) of one sheet of a spreadsheet file.

    Args:
        path: Spreadsheet path
        sheet: Sheet name; defaults to the first non-empty sheet

    Raises:
        MalformedInputError: If the named sheet does not exist
    """
    workbook = load_workbook(path)
    if sheet is not None:
        for candidate in workbook.sheets:
            if candidate.name == sheet:
                return candidate.rows
        raise MalformedInputError(f"Sheet '{sheet}' not found in '{Path(path).name}'")

    for candidate in workbook.sheets:
        if candidate.rows:
            return candidate.rows
    return []
