"""Exception types raised inside the import pipeline."""

from __future__ import annotations


class ImporterError(Exception):
    """Base exception for import pipeline failures."""


class RowError(ImporterError):
    """Raised when a single source row cannot be loaded; the run continues."""

    def __init__(self, row_number: int, message: str) -> None:
        super().__init__(f"Row {row_number}: {message}")
        self.row_number = row_number
        self.reason = message


class RunAbortError(ImporterError):
    """Raised when a run cannot continue at all."""

    def __init__(self, message: str, *, run_id: int | None = None, kind: str | None = None) -> None:
        super().__init__(message)
        self.run_id = run_id
        self.kind = kind
