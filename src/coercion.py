"""
Cell coercion helpers.

Spreadsheet cells arrive as str, int, float, bool, date/datetime or None.
These functions turn them into comparable values. They never raise: a value
that cannot be converted yields None, so callers can tell "can't parse"
apart from "parsed but invalid".
"""

import math
import re
from datetime import date, datetime
from typing import Optional

from models import Cell


# Optional sign, digits with optional comma grouping, optional fraction and exponent
NUMERIC_PATTERN = re.compile(
    r"^[+-]?(?:\d{1,3}(?:,\d{3})+|\d+)?(?:\.\d+)?(?:[eE][+-]?\d+)?$"
)

ISO_DATE_PATTERN = re.compile(
    r"^\d{4}-\d{2}-\d{2}(?:[T ]\d{2}:\d{2}(?::\d{2}(?:\.\d{1,6})?)?)?(?:Z|[+-]\d{2}:?\d{2})?$"
)


def format_cell(cell: Cell) -> str:
    """
    Canonical text for a cell, without trimming.

    Args:
        cell: Raw cell value

    Returns:
        "" for blanks, "true"/"false" for booleans, integral floats without
        a trailing ".0", ISO 8601 for dates, str() for everything else
    """
    if cell is None:
        return ""
    if isinstance(cell, bool):
        return "true" if cell else "false"
    if isinstance(cell, float):
        if math.isfinite(cell) and cell.is_integer():
            return str(int(cell))
        return repr(cell)
    if isinstance(cell, (datetime, date)):
        return cell.isoformat()
    return str(cell)


def to_trimmed_string(cell: Cell) -> str:
    """Canonical text for a cell with surrounding whitespace removed."""
    return format_cell(cell).strip()


def is_blank(cell: Cell) -> bool:
    """True for None and for strings that are empty after trimming."""
    if cell is None:
        return True
    if isinstance(cell, str):
        return cell.strip() == ""
    return False


def to_number(cell: Cell) -> Optional[float]:
    """
    Convert a cell to a number.

    Numeric cells pass through; numeric-looking strings ("42", "-1.5",
    "1,234.50", "1e3") are parsed. Booleans, dates and anything else fail.

    Returns:
        The numeric value, or None when the cell is not numeric
    """
    if isinstance(cell, bool):
        return None
    if isinstance(cell, (int, float)):
        if isinstance(cell, float) and not math.isfinite(cell):
            return None
        return cell
    if not isinstance(cell, str):
        return None

    text = cell.strip()
    # The pattern allows an empty match, so require at least one digit
    if not any(ch.isdigit() for ch in text) or not NUMERIC_PATTERN.match(text):
        return None
    return float(text.replace(",", ""))


def to_date(cell: Cell) -> Optional[datetime]:
    """
    Convert a cell to a datetime.

    Native datetimes pass through, dates become midnight datetimes and
    ISO-like strings (YYYY-MM-DD with optional time and offset) are parsed.

    Returns:
        The datetime, or None when the cell is not a date
    """
    if isinstance(cell, datetime):
        return cell
    if isinstance(cell, date):
        return datetime(cell.year, cell.month, cell.day)
    if not isinstance(cell, str):
        return None

    text = cell.strip()
    if not ISO_DATE_PATTERN.match(text):
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        # Well-formed but impossible dates such as 2024-02-30
        return None
