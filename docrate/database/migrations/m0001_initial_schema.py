"""
Migration 0001: initial schema.

Creates the doctor directory (doctors, specialties, arrangements), import
history (import_logs, import_rows) and the normalization lookup table
(ai_mappings). The tables are declared here as they stood at version 1, on
their own ``MetaData``, so later model changes never leak into this step.
Tables are created with ``checkfirst`` so re-applying against a partially
created schema only fills in what is missing.
"""

from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy.engine import Connection

from docrate.database.migrator import Migration

metadata = sa.MetaData()


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), nullable=False)


def _updated_at() -> sa.Column:
    return sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False)


def _deleted_at() -> sa.Column:
    return sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True, index=True)


doctors = sa.Table(
    "doctors",
    metadata,
    sa.Column("id", sa.Integer, primary_key=True),
    sa.Column("license_number", sa.String(50), nullable=True, index=True),
    sa.Column("first_name", sa.String(100), nullable=False),
    sa.Column("last_name", sa.String(100), nullable=False),
    sa.Column("phone", sa.String(50), nullable=True),
    sa.Column("email", sa.String(254), nullable=True),
    sa.Column("city", sa.String(100), nullable=True, index=True),
    sa.Column("address", sa.Text, nullable=True),
    _created_at(),
    _updated_at(),
    _deleted_at(),
    sa.Index("idx_doctors_name", "last_name", "first_name"),
)

# skipped_count arrives with migration 0002.
import_logs = sa.Table(
    "import_logs",
    metadata,
    sa.Column("id", sa.Integer, primary_key=True),
    sa.Column("source", sa.String(100), nullable=False, index=True),
    sa.Column("filename", sa.String(255), nullable=True),
    sa.Column(
        "status",
        sa.Enum("pending", "running", "completed", "failed", name="import_run_status_enum"),
        nullable=False,
        index=True,
    ),
    sa.Column("total_rows", sa.Integer, nullable=False, server_default="0"),
    sa.Column("processed_rows", sa.Integer, nullable=False, server_default="0"),
    sa.Column("new_count", sa.Integer, nullable=False, server_default="0"),
    sa.Column("updated_count", sa.Integer, nullable=False, server_default="0"),
    sa.Column("error_count", sa.Integer, nullable=False, server_default="0"),
    sa.Column("error_message", sa.Text, nullable=True),
    sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    _created_at(),
    sa.Index("idx_import_logs_created", "created_at"),
)

specialties = sa.Table(
    "specialties",
    metadata,
    sa.Column("id", sa.Integer, primary_key=True),
    sa.Column("doctor_id", sa.Integer, sa.ForeignKey("doctors.id"), nullable=False, index=True),
    sa.Column("source_specialty", sa.String(255), nullable=False),
    sa.Column("normalized_specialty", sa.String(255), nullable=True, index=True),
    sa.Column("source_company", sa.String(100), nullable=False, index=True),
    _created_at(),
)

arrangements = sa.Table(
    "arrangements",
    metadata,
    sa.Column("id", sa.Integer, primary_key=True),
    sa.Column("doctor_id", sa.Integer, sa.ForeignKey("doctors.id"), nullable=False, index=True),
    sa.Column("insurance_company", sa.String(100), nullable=False, index=True),
    sa.Column("arrangement_type", sa.String(100), nullable=True),
    sa.Column("source_file", sa.String(255), nullable=True),
    sa.Column("import_id", sa.Integer, sa.ForeignKey("import_logs.id"), nullable=True, index=True),
    sa.Column("valid_from", sa.Date, nullable=True),
    sa.Column("valid_until", sa.Date, nullable=True),
    _created_at(),
    _updated_at(),
    _deleted_at(),
)

import_rows = sa.Table(
    "import_rows",
    metadata,
    sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
    sa.Column(
        "run_id",
        sa.Integer,
        sa.ForeignKey("import_logs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    sa.Column("source_row_index", sa.Integer, nullable=False),
    sa.Column(
        "status",
        sa.Enum("success", "error", "skipped", name="import_row_status_enum"),
        nullable=False,
        index=True,
    ),
    sa.Column("target_entity_id", sa.Integer, sa.ForeignKey("doctors.id"), nullable=True),
    sa.Column("error_message", sa.String(500), nullable=True),
    sa.Column("raw_snapshot", sa.JSON, nullable=True),
    _created_at(),
)

ai_mappings = sa.Table(
    "ai_mappings",
    metadata,
    sa.Column("id", sa.Integer, primary_key=True),
    sa.Column(
        "mapping_type",
        sa.Enum("specialty", "city", "company", name="ai_mapping_type_enum"),
        nullable=False,
    ),
    sa.Column("source_value", sa.String(255), nullable=False),
    sa.Column("normalized_value", sa.String(255), nullable=False, index=True),
    sa.Column("confidence", sa.Numeric(3, 2), nullable=True),
    sa.Column("is_manual_override", sa.Boolean, nullable=False, index=True),
    sa.Column("approved_by", sa.Integer, nullable=True),
    sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
    _created_at(),
    _updated_at(),
    sa.UniqueConstraint("mapping_type", "source_value", name="uq_ai_mappings_type_source"),
)

# Creation order respects foreign keys; drop order is the reverse.
TABLES = (doctors, import_logs, specialties, arrangements, import_rows, ai_mappings)


def up(connection: Connection) -> None:
    for table in TABLES:
        table.create(bind=connection, checkfirst=True)


def down(connection: Connection) -> None:
    for table in reversed(TABLES):
        table.drop(bind=connection, checkfirst=True)


MIGRATION = Migration(
    version=1,
    description="Initial schema - doctors, arrangements, specialties, imports, mappings",
    up=up,
    down=down,
)
