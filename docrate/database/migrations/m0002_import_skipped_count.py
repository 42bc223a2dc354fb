"""
Migration 0002: add ``skipped_count`` to ``import_logs``.

Rows skipped as in-file duplicates get their own counter so that
success + error + skipped always adds up to processed_rows. The inspector
check keeps this step safe to re-apply.
"""

from __future__ import annotations

from sqlalchemy import inspect, text
from sqlalchemy.engine import Connection

from docrate.database.migrator import Migration

TABLE = "import_logs"
COLUMN = "skipped_count"


def _has_column(connection: Connection) -> bool:
    inspector = inspect(connection)
    return COLUMN in {col["name"] for col in inspector.get_columns(TABLE)}


def up(connection: Connection) -> None:
    if _has_column(connection):
        return
    connection.execute(text(f"ALTER TABLE {TABLE} ADD COLUMN {COLUMN} INTEGER NOT NULL DEFAULT 0"))


def down(connection: Connection) -> None:
    if not _has_column(connection):
        return
    connection.execute(text(f"ALTER TABLE {TABLE} DROP COLUMN {COLUMN}"))


MIGRATION = Migration(
    version=2,
    description="Track skipped rows on import_logs",
    up=up,
    down=down,
)
