"""Error types raised by the validation and reconciliation engines."""

from typing import Optional


class ToolkitError(Exception):
    """Base class for all toolkit errors."""


class MalformedInputError(ToolkitError, ValueError):
    """Input shape is unusable: no sheets, no header row, or a missing required field."""


class HeaderNotFoundError(MalformedInputError):
    """A required column header is absent from a table's header row."""

    def __init__(self, header: str, table: Optional[str] = None):
        self.header = header
        self.table = table
        if table:
            message = f'"{header}" header not found in {table}.'
        else:
            message = f'"{header}" header not found.'
        super().__init__(message)


class RuleParseError(ToolkitError, ValueError):
    """A rule definition has an unusable pattern or bounds."""

    def __init__(self, message: str, rule_kind: Optional[str] = None):
        self.rule_kind = rule_kind
        super().__init__(message)
