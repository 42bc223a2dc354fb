"""Schema versioning: migration runner, migration table and operator CLI."""

from __future__ import annotations

from flask import Flask

from .migrator import (
    VERSION_KEY,
    Migration,
    MigrationErrorKind,
    MigrationReport,
    MigrationRunner,
    MigrationStepResult,
)

__all__ = [
    "VERSION_KEY",
    "Migration",
    "MigrationErrorKind",
    "MigrationReport",
    "MigrationRunner",
    "MigrationStepResult",
    "init_schema",
]


def init_schema(app: Flask) -> None:
    """Register the ``schema`` CLI group on the application."""
    from .cli import schema_cli

    if schema_cli.name in app.cli.commands:
        app.cli.commands.pop(schema_cli.name)
    app.cli.add_command(schema_cli)
