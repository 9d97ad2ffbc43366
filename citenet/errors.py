"""
Error taxonomy for the citation network pipeline.

Ingestion errors propagate up to the view, which moves into its terminal
ERROR state. Row-level problems are reported as MalformedRecordWarning and
never interrupt ingestion.
"""

from typing import Any, Mapping, Optional


class CitenetError(Exception):
    """Base class for all pipeline errors."""


class IngestionError(CitenetError):
    """Raised when a record source cannot produce a usable record set."""


class FetchError(IngestionError):
    """The source is unreachable or answered with a non-success status."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class EmptySourceError(IngestionError):
    """The source answered but yielded no text."""


class NoValidRecordsError(IngestionError):
    """Zero records survived validation."""

    def __init__(self, message: str, dropped: int = 0):
        super().__init__(message)
        self.dropped = dropped


class MalformedRecordWarning(UserWarning):
    """A single row failed validation and was dropped."""

    def __init__(self, row_number: Optional[int], reason: str, row: Mapping[Any, Any]):
        where = f"row {row_number}" if row_number is not None else "unparsed row"
        super().__init__(f"{where}: {reason}")
        self.row_number = row_number
        self.reason = reason
        self.row = dict(row)
