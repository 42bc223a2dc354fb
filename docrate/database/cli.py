"""
Operator commands for schema migrations.

``flask schema status`` reports the stored version and whether migrations are
pending; ``flask schema migrate`` applies them; ``flask schema rollback`` runs
the current version's ``down()`` after confirmation.
"""

from __future__ import annotations

import json

import click
from flask.cli import AppGroup

from docrate.database.migrator import MigrationReport, MigrationRunner
from docrate.settings_store import DatabaseSettingsStore

schema_cli = AppGroup("schema", help="Inspect and apply database schema migrations.")


def _runner() -> MigrationRunner:
    return MigrationRunner(DatabaseSettingsStore())


def _format_report(report: MigrationReport) -> str:
    lines = [f"Schema {report.status}: version {report.from_version} -> {report.to_version}"]
    for step in report.steps:
        marker = "ok " if step.ok else "ERR"
        kind = f" [{step.kind.value}]" if step.kind else ""
        lines.append(f"  {marker} {step.version:04d}{kind} {step.message}")
    return "\n".join(lines)


@schema_cli.command("status")
@click.option("--json", "as_json", is_flag=True, help="Emit machine-readable output.")
def schema_status(as_json: bool):
    """Show the stored schema version and pending migrations."""
    runner = _runner()
    current = runner.current_version()
    payload = {
        "current_version": current,
        "latest_version": runner.latest_version,
        "pending": runner.pending(),
        "pending_versions": [v for v in runner.registry if v > current],
    }
    if as_json:
        click.echo(json.dumps(payload))
        return
    click.echo(f"Current schema version: {current}")
    click.echo(f"Latest registered version: {runner.latest_version}")
    if payload["pending"]:
        click.echo(
            "Database migrations are pending ("
            + ", ".join(str(v) for v in payload["pending_versions"])
            + "). Run `flask schema migrate` to apply them."
        )
    else:
        click.echo("Schema is up to date.")


@schema_cli.command("migrate")
@click.option("--json", "as_json", is_flag=True, help="Emit the migration report as JSON.")
def schema_migrate(as_json: bool):
    """Apply pending migrations in order, stopping at the first failure."""
    report = _runner().migrate()
    click.echo(json.dumps(report.as_dict()) if as_json else _format_report(report))
    if not report.ok:
        raise click.ClickException("Migration chain halted. Fix the failing migration and run migrate again.")


@schema_cli.command("rollback")
@click.option("--yes", is_flag=True, help="Skip the confirmation prompt.")
def schema_rollback(yes: bool):
    """Manually roll back the current schema version."""
    runner = _runner()
    current = runner.current_version()
    if current == 0:
        click.echo("Nothing to roll back.")
        return
    if not yes:
        click.confirm(f"Roll back schema version {current}? This may drop data.", abort=True)
    report = runner.rollback()
    click.echo(_format_report(report))
    if not report.ok:
        raise click.ClickException(f"Rollback of version {current} failed.")
