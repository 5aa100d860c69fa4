"""
Replay Errors

Error taxonomy for dataset loading and row classification.

Row-scoped errors (RowError subclasses) are collected alongside a partially
annotated row and never abort a session. Everything else rejects the call
that raised it and leaves the session as it was.
"""

from typing import Optional


class ReplayError(Exception):
    """Base class for all replay errors."""


class RowError(ReplayError):
    """An error scoped to a single dataset row."""

    def __init__(self, message: str, row_index: Optional[int] = None, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.row_index = row_index
        self.field = field

    def to_dict(self) -> dict:
        return {
            "type": type(self).__name__,
            "message": self.message,
            "row_index": self.row_index,
            "field": self.field,
        }


class DataValidationError(RowError):
    """A telemetry cell is missing or cannot be parsed."""

    def __init__(self, field: str, row_index: Optional[int], value: object = None):
        super().__init__(
            f"Row {row_index}: invalid value for '{field}': {value!r}",
            row_index=row_index,
            field=field,
        )
        self.value = value


class UnclassifiedStateError(RowError):
    """No power-source or battery-action rule matched the row."""


class EmptyDatasetError(ReplayError):
    """The dataset has no rows."""


class DatasetNotFoundError(ReplayError):
    """No dataset/session exists for the given handle."""


class DatasetFormatError(ReplayError):
    """The uploaded dataset could not be read."""


class SessionNotLoadedError(ReplayError):
    """An operation needs a loaded dataset but none was loaded."""


class UnexportedHistoryError(ReplayError):
    """Loading would discard annotated rows that were never exported."""
