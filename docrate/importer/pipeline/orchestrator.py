"""
Import run orchestration.

One run loads one insurer file: it takes the system-wide import lock, records
an ``ImportRun``, parses the file and loads every row inside its own SAVEPOINT
so a bad row is recorded and skipped without touching the rows around it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

from flask import current_app, has_app_context
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from docrate.importer import sanitize
from docrate.importer.adapters import ParseFailure, ParseOptions, ParsedFile, ParsedRow, parse
from docrate.importer.contracts import (
    DOCTOR_FIELD_TYPES,
    REQUIRED_FIELDS,
    ColumnMapping,
    apply_column_mapping,
    detect_column_mapping,
    missing_required_fields,
)
from docrate.importer.errors import RowError, RunAbortError
from docrate.importer.lock import ImportLock, LockResult
from docrate.models import ImportRowResult, ImportRowStatus, ImportRun, ImportRunStatus, db
from docrate.models.importer.schema import ERROR_MESSAGE_MAX_LENGTH

from .load_core import (
    DoctorAction,
    MappingLookup,
    NaturalKey,
    attach_specialty,
    default_mapping_lookup,
    natural_key,
    upsert_arrangement,
    upsert_doctor,
)

DEFAULT_BATCH_SIZE = 100

logger = logging.getLogger(__name__)


def _log(level: int, message: str) -> None:
    if has_app_context():
        current_app.logger.log(level, message)
    else:
        logger.log(level, message)


@dataclass
class ImportRunSummary:
    """Outcome of one orchestrated import run."""

    run_id: int | None
    status: ImportRunStatus
    source: str
    filename: str | None
    total_rows: int = 0
    processed_rows: int = 0
    new_count: int = 0
    updated_count: int = 0
    error_count: int = 0
    skipped_count: int = 0
    error_message: str | None = None
    error_kind: str | None = None

    @property
    def success_count(self) -> int:
        return self.processed_rows - self.error_count - self.skipped_count

    @property
    def ok(self) -> bool:
        return self.status is ImportRunStatus.COMPLETED

    @classmethod
    def from_run(cls, run: ImportRun, *, error_kind: str | None = None) -> "ImportRunSummary":
        return cls(
            run_id=run.id,
            status=run.status,
            source=run.source,
            filename=run.filename,
            total_rows=run.total_rows or 0,
            processed_rows=run.processed_rows or 0,
            new_count=run.new_count or 0,
            updated_count=run.updated_count or 0,
            error_count=run.error_count or 0,
            skipped_count=run.skipped_count or 0,
            error_message=run.error_message,
            error_kind=error_kind,
        )

    def as_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "status": self.status.value,
            "source": self.source,
            "filename": self.filename,
            "total_rows": self.total_rows,
            "processed_rows": self.processed_rows,
            "success_count": self.success_count,
            "new_count": self.new_count,
            "updated_count": self.updated_count,
            "error_count": self.error_count,
            "skipped_count": self.skipped_count,
            "error_message": self.error_message,
            "error_kind": self.error_kind,
        }


@dataclass
class _RowOutcome:
    status: ImportRowStatus
    target_entity_id: int | None = None
    message: str | None = None
    action: DoctorAction | None = None
    key: NaturalKey | None = None


def _describe_exception(exc: Exception) -> str:
    # SQLAlchemy messages embed bound parameters, which carry row values.
    if isinstance(exc, SQLAlchemyError) and getattr(exc, "orig", None) is not None:
        return f"{type(exc).__name__}: {exc.orig}"
    return f"{type(exc).__name__}: {exc}"


def _truncate(message: str | None) -> str | None:
    if message is None or len(message) <= ERROR_MESSAGE_MAX_LENGTH:
        return message
    return message[: ERROR_MESSAGE_MAX_LENGTH - 3] + "..."


class ImportOrchestrator:
    """Runs a single insurer file through parse, sanitize and load."""

    def __init__(
        self,
        lock: ImportLock,
        *,
        session: Session | None = None,
        mapping_lookup: MappingLookup | None = None,
        batch_size: int | None = None,
    ) -> None:
        self.lock = lock
        self.session: Session = session or db.session
        self.mapping_lookup = mapping_lookup or default_mapping_lookup(self.session)
        if batch_size is None:
            batch_size = DEFAULT_BATCH_SIZE
            if has_app_context():
                batch_size = current_app.config.get("IMPORTER_BATCH_SIZE", DEFAULT_BATCH_SIZE)
        self.batch_size = max(1, int(batch_size))

    def _commit_batch(self) -> None:
        if has_app_context() and current_app.config.get("TESTING"):
            self.session.flush()
        else:
            self.session.commit()

    def run(
        self,
        path: str | Path,
        *,
        source: str,
        column_mapping: ColumnMapping | None = None,
        parse_options: ParseOptions | None = None,
    ) -> ImportRunSummary:
        source = sanitize.text(source)
        if not source:
            raise ValueError("An import source (insurance company) is required.")
        path = Path(path)
        filename = sanitize.text(path.name)

        lock_result = self.lock.acquire(source)
        if not lock_result:
            return self._record_rejected_run(filename, source, lock_result)

        run: ImportRun | None = None
        run_id: int | None = None
        try:
            run = ImportRun(source=source, filename=filename, status=ImportRunStatus.PENDING)
            self.session.add(run)
            self.session.commit()
            run_id = run.id
            run.mark_running()
            self.session.commit()
            _log(logging.INFO, f"Import run {run.id} started for {source} ({filename}).")

            parsed = parse(path, parse_options)
            if isinstance(parsed, ParseFailure):
                run.mark_failed(parsed.message)
                self.session.commit()
                _log(logging.WARNING, f"Import run {run.id} failed during parsing: {parsed.message}")
                return ImportRunSummary.from_run(run, error_kind=parsed.kind.value)

            mapping = dict(column_mapping) if column_mapping is not None else detect_column_mapping(parsed.headers)
            self._process_rows(run, parsed, mapping)

            run.mark_completed()
            self.session.commit()
            summary = ImportRunSummary.from_run(run)
            _log(
                logging.INFO,
                f"Import run {run.id} completed: {summary.processed_rows}/{summary.total_rows} rows, "
                f"{summary.new_count} new, {summary.updated_count} updated, "
                f"{summary.error_count} errors, {summary.skipped_count} skipped.",
            )
            return summary
        except Exception as exc:
            self._abort_run(run, exc)
            raise RunAbortError(
                f"Import run aborted: {_describe_exception(exc)}",
                run_id=run_id,
                kind=type(exc).__name__,
            ) from exc
        finally:
            self.lock.release()

    def _record_rejected_run(self, filename: str, source: str, lock_result: LockResult) -> ImportRunSummary:
        run = ImportRun(source=source, filename=filename, status=ImportRunStatus.PENDING)
        run.mark_failed(lock_result.message)
        self.session.add(run)
        self.session.commit()
        _log(logging.WARNING, f"Import for {source} rejected: {lock_result.message}")
        return ImportRunSummary.from_run(run, error_kind=lock_result.kind.value if lock_result.kind else None)

    def _abort_run(self, run: ImportRun | None, exc: Exception) -> None:
        _log(logging.ERROR, f"Import run aborted: {_describe_exception(exc)}")
        try:
            self.session.rollback()
            if run is None or not sa_inspect(run).persistent:
                return
            if run.status.is_terminal:
                return
            run.mark_failed(_truncate(f"Import aborted: {_describe_exception(exc)}"))
            self.session.commit()
        except SQLAlchemyError as db_exc:
            self.session.rollback()
            _log(logging.ERROR, f"Could not record failure for import run: {db_exc}")

    def _process_rows(self, run: ImportRun, parsed: ParsedFile, mapping: Mapping[str, str]) -> None:
        run.total_rows = parsed.total_rows
        missing_columns = [name for name in REQUIRED_FIELDS if name not in mapping]
        if missing_columns:
            _log(
                logging.WARNING,
                f"Import run {run.id}: no column found for {', '.join(missing_columns)}; affected rows will fail.",
            )

        seen: dict[NaturalKey, int] = {}
        pending = 0
        for parsed_row in parsed.rows:
            outcome = self._process_row(run, parsed_row, mapping, seen)
            run.processed_rows += 1
            if outcome.status is ImportRowStatus.ERROR:
                run.error_count += 1
            elif outcome.status is ImportRowStatus.SKIPPED:
                run.skipped_count += 1
            elif outcome.action is DoctorAction.CREATED:
                run.new_count += 1
            elif outcome.action is DoctorAction.UPDATED:
                run.updated_count += 1

            pending += 1
            if pending >= self.batch_size:
                self._commit_batch()
                pending = 0

        if pending:
            self._commit_batch()

    def _process_row(
        self,
        run: ImportRun,
        parsed_row: ParsedRow,
        mapping: Mapping[str, str],
        seen: dict[NaturalKey, int],
    ) -> _RowOutcome:
        savepoint = self.session.begin_nested()
        try:
            outcome = self._load_row(run, parsed_row, mapping, seen)
            savepoint.commit()
        except RowError as exc:
            savepoint.rollback()
            outcome = _RowOutcome(status=ImportRowStatus.ERROR, message=exc.reason)
            self._log_row_error(run, parsed_row, exc.reason, mapping)
        except Exception as exc:
            savepoint.rollback()
            message = _describe_exception(exc)
            outcome = _RowOutcome(status=ImportRowStatus.ERROR, message=message)
            self._log_row_error(run, parsed_row, message, mapping)

        if outcome.status is ImportRowStatus.SUCCESS and outcome.key is not None:
            seen[outcome.key] = parsed_row.row_number

        self.session.add(
            ImportRowResult(
                run_id=run.id,
                source_row_index=parsed_row.row_number,
                status=outcome.status,
                target_entity_id=outcome.target_entity_id,
                error_message=_truncate(outcome.message),
                raw_snapshot=dict(parsed_row.fields),
            )
        )
        return outcome

    def _load_row(
        self,
        run: ImportRun,
        parsed_row: ParsedRow,
        mapping: Mapping[str, str],
        seen: Mapping[NaturalKey, int],
    ) -> _RowOutcome:
        fields = sanitize.row(apply_column_mapping(parsed_row.fields, mapping), DOCTOR_FIELD_TYPES)

        missing = missing_required_fields(fields)
        if missing:
            raise RowError(parsed_row.row_number, f"Missing required field(s): {', '.join(missing)}")

        key = natural_key(fields)
        if key in seen:
            return _RowOutcome(
                status=ImportRowStatus.SKIPPED,
                message=f"Duplicate of row {seen[key]} ({key.describe()})",
            )

        upsert = upsert_doctor(self.session, fields, key=key)
        specialty_changed = attach_specialty(
            self.session,
            upsert.doctor,
            fields.get("specialty", ""),
            source_company=run.source,
            mapping_lookup=self.mapping_lookup,
        )
        upsert_arrangement(
            self.session,
            upsert.doctor,
            insurance_company=run.source,
            source_file=run.filename,
            import_id=run.id,
        )

        action = upsert.action
        if action is DoctorAction.UNCHANGED and specialty_changed:
            action = DoctorAction.UPDATED
        return _RowOutcome(
            status=ImportRowStatus.SUCCESS,
            target_entity_id=upsert.doctor.id,
            action=action,
            key=key,
        )

    def _log_row_error(
        self,
        run: ImportRun,
        parsed_row: ParsedRow,
        message: str,
        mapping: Mapping[str, str],
    ) -> None:
        phone_note = ""
        phone_header = mapping.get("phone")
        if phone_header is not None and parsed_row.fields.get(phone_header):
            phone_note = f" (phone {sanitize.mask_phone(parsed_row.fields[phone_header])})"
        _log(logging.WARNING, f"Import run {run.id} row {parsed_row.row_number} failed: {message}{phone_note}")
