"""
SQLAlchemy models for import history.

``import_logs`` records one row per ingestion run and ``import_rows`` keeps the
append-only per-row audit trail. Row results survive regardless of how the run
ends so operators can trace every source row back to its outcome.
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import Enum, ForeignKey, Index, event
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..base import BaseModel, db, utcnow

ERROR_MESSAGE_MAX_LENGTH = 500


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class ImportRunStatus(str, enum.Enum):
    """Lifecycle states for an import run."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ImportRunStatus.COMPLETED, ImportRunStatus.FAILED)


class ImportRun(BaseModel):
    """Metadata and counters describing a single import execution."""

    __tablename__ = "import_logs"

    id: Mapped[int] = mapped_column(primary_key=True)
    source: Mapped[str] = mapped_column(db.String(100), nullable=False, index=True)
    filename: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    status: Mapped[ImportRunStatus] = mapped_column(
        Enum(ImportRunStatus, name="import_run_status_enum", values_callable=_enum_values),
        nullable=False,
        default=ImportRunStatus.PENDING,
        index=True,
    )
    total_rows: Mapped[int] = mapped_column(db.Integer, nullable=False, default=0)
    processed_rows: Mapped[int] = mapped_column(db.Integer, nullable=False, default=0)
    new_count: Mapped[int] = mapped_column(db.Integer, nullable=False, default=0)
    updated_count: Mapped[int] = mapped_column(db.Integer, nullable=False, default=0)
    error_count: Mapped[int] = mapped_column(db.Integer, nullable=False, default=0)
    skipped_count: Mapped[int] = mapped_column(db.Integer, nullable=False, default=0)
    error_message: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(db.DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(db.DateTime(timezone=True))

    row_results = relationship(
        "ImportRowResult",
        back_populates="run",
        order_by="ImportRowResult.id",
        passive_deletes=True,
    )

    __table_args__ = (Index("idx_import_logs_created", "created_at"),)

    def __repr__(self) -> str:
        return f"<ImportRun {self.id} {self.source} {self.status.value}>"

    @property
    def success_count(self) -> int:
        return (self.processed_rows or 0) - (self.error_count or 0) - (self.skipped_count or 0)

    def _require_status(self, *allowed: ImportRunStatus) -> None:
        if self.status not in allowed:
            raise ValueError(
                f"Import run {self.id} cannot leave status '{self.status.value}' "
                f"(expected one of: {', '.join(s.value for s in allowed)})."
            )

    def mark_running(self) -> None:
        self._require_status(ImportRunStatus.PENDING)
        self.status = ImportRunStatus.RUNNING
        self.started_at = utcnow()

    def mark_completed(self) -> None:
        self._require_status(ImportRunStatus.RUNNING)
        self.status = ImportRunStatus.COMPLETED
        self.completed_at = utcnow()

    def mark_failed(self, message: str) -> None:
        self._require_status(ImportRunStatus.PENDING, ImportRunStatus.RUNNING)
        self.status = ImportRunStatus.FAILED
        self.error_message = message
        self.completed_at = utcnow()


class ImportRowStatus(str, enum.Enum):
    """Outcome recorded for a single source row."""

    SUCCESS = "success"
    ERROR = "error"
    SKIPPED = "skipped"


class ImportRowResult(BaseModel):
    """
    Append-only audit record for one source row of an import run.

    ``source_row_index`` is the true 1-based row number in the input file and
    ``raw_snapshot`` holds the unsanitized cell values exactly as parsed.
    """

    __tablename__ = "import_rows"

    id: Mapped[int] = mapped_column(db.Integer, primary_key=True, autoincrement=True)
    run_id: Mapped[int] = mapped_column(
        ForeignKey("import_logs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    source_row_index: Mapped[int] = mapped_column(db.Integer, nullable=False)
    status: Mapped[ImportRowStatus] = mapped_column(
        Enum(ImportRowStatus, name="import_row_status_enum", values_callable=_enum_values),
        nullable=False,
        index=True,
    )
    target_entity_id: Mapped[int | None] = mapped_column(ForeignKey("doctors.id"), nullable=True)
    error_message: Mapped[str | None] = mapped_column(db.String(ERROR_MESSAGE_MAX_LENGTH), nullable=True)
    raw_snapshot: Mapped[dict | None] = mapped_column(db.JSON, nullable=True)

    run = relationship("ImportRun", back_populates="row_results")

    def __repr__(self) -> str:
        return f"<ImportRowResult run={self.run_id} row={self.source_row_index} {self.status.value}>"


@event.listens_for(ImportRowResult, "before_update")
def _reject_row_result_update(mapper, connection, target) -> None:
    raise ValueError("Import row results are append-only and cannot be modified.")
