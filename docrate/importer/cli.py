"""
Operator commands for the doctor directory importer.

``flask importer run`` loads one insurer file inline; ``lock-status`` and
``force-unlock`` inspect and clear the system-wide import lock; ``runs`` lists
recent import history.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import click
from flask import current_app
from flask.cli import AppGroup
from sqlalchemy import select

from docrate.importer.adapters import ParseOptions
from docrate.importer.contracts import ColumnMappingError, load_column_mapping
from docrate.importer.errors import RunAbortError
from docrate.importer.pipeline import ImportOrchestrator, ImportRunSummary
from docrate.models.base import db
from docrate.models.importer.schema import ImportRun
from docrate.utils.importer import build_import_lock, resolve_import_file

importer_cli = AppGroup("importer", help="Doctor directory import commands.")


def get_disabled_importer_group() -> click.Group:
    """
    Return a minimal command group that informs the operator the importer is disabled.
    """

    @click.group(name="importer", invoke_without_command=True)
    def disabled_group():
        raise click.ClickException("Importer commands are unavailable because IMPORTER_ENABLED=false.")

    return disabled_group


def _format_summary(summary: ImportRunSummary) -> str:
    lines = [
        f"Import run {summary.run_id} {summary.status.value} (source: {summary.source}, file: {summary.filename})",
        f"  rows: {summary.processed_rows}/{summary.total_rows} processed",
        f"  success: {summary.success_count} (new {summary.new_count}, updated {summary.updated_count})",
        f"  errors: {summary.error_count}  skipped: {summary.skipped_count}",
    ]
    if summary.error_message:
        lines.append(f"  error: {summary.error_message}")
    return "\n".join(lines)


@importer_cli.command("run")
@click.option("--source", required=True, help="Insurance company the file comes from.")
@click.option("--file", "file_path", required=True, type=click.Path(path_type=Path, dir_okay=False))
@click.option("--sheet", "sheet_index", default=0, show_default=True, type=click.IntRange(min=0), help="Worksheet index (spreadsheets only).")
@click.option("--header-row", default=1, show_default=True, type=click.IntRange(min=1), help="1-based row holding the headers.")
@click.option("--delimiter", default=",", show_default=True, help="Field delimiter for delimited text.")
@click.option("--quotechar", default='"', show_default=True, help="Quote character for delimited text.")
@click.option(
    "--mapping",
    "mapping_path",
    type=click.Path(path_type=Path, exists=True, dir_okay=False),
    help="YAML/JSON column mapping overriding header detection.",
)
@click.option("--summary-json", is_flag=True, help="Emit a machine-readable summary payload after completion.")
def importer_run(
    source: str,
    file_path: Path,
    sheet_index: int,
    header_row: int,
    delimiter: str,
    quotechar: str,
    mapping_path: Optional[Path],
    summary_json: bool,
):
    """Import one insurer directory file."""
    try:
        options = ParseOptions(
            delimiter=delimiter,
            quotechar=quotechar,
            header_row=header_row,
            sheet_index=sheet_index,
        )
    except ValueError as exc:
        raise click.BadParameter(str(exc)) from exc

    column_mapping = None
    if mapping_path is not None:
        try:
            column_mapping = load_column_mapping(mapping_path)
        except ColumnMappingError as exc:
            raise click.ClickException(str(exc)) from exc

    orchestrator = ImportOrchestrator(build_import_lock(current_app))
    try:
        summary = orchestrator.run(
            resolve_import_file(current_app, file_path),
            source=source,
            column_mapping=column_mapping,
            parse_options=options,
        )
    except (ValueError, RunAbortError) as exc:
        raise click.ClickException(str(exc)) from exc

    if summary_json:
        click.echo(json.dumps(summary.as_dict(), ensure_ascii=False))
    else:
        click.echo(_format_summary(summary))
    if not summary.ok:
        raise click.ClickException(summary.error_message or "Import run failed.")


@importer_cli.command("lock-status")
@click.option("--json", "as_json", is_flag=True, help="Emit machine-readable output.")
def importer_lock_status(as_json: bool):
    """Show whether an import currently holds the lock."""
    status = build_import_lock(current_app).status()
    if as_json:
        click.echo(json.dumps(status.as_dict(), ensure_ascii=False))
        return
    click.echo(status.message)
    if status.locked:
        click.echo(f"  source: {status.source}")
        click.echo(f"  started: {status.started} UTC")
        click.echo(f"  running for: {status.running_for}s")


@importer_cli.command("force-unlock")
@click.option("--yes", is_flag=True, help="Skip the confirmation prompt.")
def importer_force_unlock(yes: bool):
    """Clear the import lock regardless of who holds it."""
    lock = build_import_lock(current_app)
    status = lock.status()
    if not status.locked:
        click.echo("No active import lock.")
        return
    if not yes:
        click.confirm(f"Force release the import lock held for {status.source}?", abort=True)
    if lock.force_release():
        click.echo("Import lock released.")
    else:
        click.echo("Import lock was already released.")


@importer_cli.command("runs")
@click.option("--limit", default=10, show_default=True, type=click.IntRange(min=1, max=500))
@click.option("--json", "as_json", is_flag=True, help="Emit machine-readable output.")
def importer_runs(limit: int, as_json: bool):
    """List the most recent import runs."""
    runs = db.session.execute(select(ImportRun).order_by(ImportRun.id.desc()).limit(limit)).scalars().all()
    summaries = [ImportRunSummary.from_run(run) for run in runs]
    if as_json:
        click.echo(json.dumps([summary.as_dict() for summary in summaries], ensure_ascii=False))
        return
    if not summaries:
        click.echo("No import runs recorded.")
        return
    for summary in summaries:
        click.echo(
            f"#{summary.run_id} {summary.status.value:<9} {summary.source} {summary.filename or '-'} "
            f"processed={summary.processed_rows}/{summary.total_rows} new={summary.new_count} "
            f"updated={summary.updated_count} errors={summary.error_count} skipped={summary.skipped_count}"
        )
