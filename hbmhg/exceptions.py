"""
Exceptions raised by the hbmhg pipeline.
"""

from typing import Iterable


class HbmError(Exception):
    """Base exception for all hbmhg errors."""


class ValidationError(HbmError, ValueError):
    """Raised when input values fail validation.

    ``invalid`` holds the offending ``(row, column, value)`` triples when
    the error comes from a table-wide check.
    """

    def __init__(self, message: str, invalid: Iterable = ()):
        super().__init__(message)
        self.invalid = list(invalid)


class MissingColumnsError(ValidationError):
    """Raised when required columns are absent from a table."""

    def __init__(self, missing: Iterable[str], where: str = "data"):
        self.missing = list(missing)
        super().__init__(f"Missing required columns in {where}: {', '.join(self.missing)}")
