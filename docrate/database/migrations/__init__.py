"""
Ordered table of schema migrations.

New migrations are appended here with the next version number; the runner
refuses to skip over a gap.
"""

from __future__ import annotations

from docrate.database.migrator import Migration

from . import m0001_initial_schema, m0002_import_skipped_count

MIGRATIONS: tuple[Migration, ...] = (
    m0001_initial_schema.MIGRATION,
    m0002_import_skipped_count.MIGRATION,
)

__all__ = ["MIGRATIONS"]
