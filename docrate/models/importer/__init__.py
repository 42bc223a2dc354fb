"""Importer history models."""

from .schema import ImportRowResult, ImportRowStatus, ImportRun, ImportRunStatus

__all__ = [
    "ImportRowResult",
    "ImportRowStatus",
    "ImportRun",
    "ImportRunStatus",
]
