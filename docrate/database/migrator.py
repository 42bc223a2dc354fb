"""
Sequential, versioned schema migrations.

The runner walks the static migration table one version at a time, persisting
the version counter in the settings store after every successful ``up()``. A
crash or failure mid-chain therefore leaves the counter at the last fully
applied version and the next ``migrate()`` call resumes from there.

Concurrent ``migrate()`` calls are not guarded: migrations are operator
triggered and infrequent, so racing invocations are an accepted gap.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping

from flask import current_app, has_app_context
from sqlalchemy.engine import Connection
from sqlalchemy.orm import Session

from docrate.models.base import db
from docrate.settings_store import SettingsStore

VERSION_KEY = "docrate_db_version"

MigrationStep = Callable[[Connection], None]


@dataclass(frozen=True)
class Migration:
    """A statically registered schema change."""

    version: int
    description: str
    up: MigrationStep | None
    down: MigrationStep | None = None


class MigrationErrorKind(str, enum.Enum):
    MISSING = "migration_missing"
    CLASS_MISSING = "migration_class_missing"
    FAILED = "migration_failed"


@dataclass(frozen=True)
class MigrationStepResult:
    version: int
    status: str
    message: str
    kind: MigrationErrorKind | None = None

    @property
    def ok(self) -> bool:
        return self.status == "success"

    def as_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "status": self.status,
            "kind": self.kind.value if self.kind else None,
            "message": self.message,
        }


@dataclass(frozen=True)
class MigrationReport:
    """Outcome of one ``migrate()`` or ``rollback()`` call."""

    status: str
    from_version: int
    to_version: int
    steps: tuple[MigrationStepResult, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return self.status != "failed"

    @property
    def completed_versions(self) -> tuple[int, ...]:
        return tuple(step.version for step in self.steps if step.ok)

    @property
    def failed_step(self) -> MigrationStepResult | None:
        for step in self.steps:
            if not step.ok:
                return step
        return None

    def as_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "from_version": self.from_version,
            "to_version": self.to_version,
            "migrations": [step.as_dict() for step in self.steps],
        }


def build_registry(migrations: Iterable[Migration]) -> dict[int, Migration]:
    """Index migrations by version, rejecting duplicates and non-positive versions."""
    registry: dict[int, Migration] = {}
    for migration in migrations:
        if migration.version < 1:
            raise ValueError(f"Migration versions start at 1, got {migration.version}.")
        if migration.version in registry:
            raise ValueError(f"Duplicate migration registered for version {migration.version}.")
        registry[migration.version] = migration
    return dict(sorted(registry.items()))


def _log(level: str, message: str, *args: object) -> None:
    if has_app_context():
        getattr(current_app.logger, level)(message, *args)


class MigrationRunner:
    """Apply registered migrations in strict version order."""

    def __init__(
        self,
        store: SettingsStore,
        migrations: Mapping[int, Migration] | Iterable[Migration] | None = None,
        *,
        session: Session | None = None,
    ) -> None:
        if migrations is None:
            from docrate.database.migrations import MIGRATIONS

            migrations = MIGRATIONS
        if isinstance(migrations, Mapping):
            migrations = migrations.values()
        self.registry = build_registry(migrations)
        self.store = store
        self.session: Session = session or db.session

    @property
    def latest_version(self) -> int:
        return max(self.registry, default=0)

    def current_version(self) -> int:
        value = self.store.get(VERSION_KEY, 0)
        try:
            return int(value or 0)
        except (TypeError, ValueError):
            return 0

    def pending(self) -> bool:
        return self.current_version() < self.latest_version

    def migrate(self) -> MigrationReport:
        start_version = self.current_version()
        if start_version >= self.latest_version:
            return MigrationReport(status="up_to_date", from_version=start_version, to_version=start_version)

        steps: list[MigrationStepResult] = []
        failed = False
        for version in range(start_version + 1, self.latest_version + 1):
            migration = self.registry.get(version)
            if migration is None:
                steps.append(
                    MigrationStepResult(
                        version=version,
                        status="error",
                        kind=MigrationErrorKind.MISSING,
                        message=f"No migration registered for version {version}.",
                    )
                )
                failed = True
                break
            if not callable(migration.up):
                steps.append(
                    MigrationStepResult(
                        version=version,
                        status="error",
                        kind=MigrationErrorKind.CLASS_MISSING,
                        message=f"Migration {version} ({migration.description}) does not define up().",
                    )
                )
                failed = True
                break

            result = self._apply(migration)
            steps.append(result)
            if not result.ok:
                failed = True
                break

        report = MigrationReport(
            status="failed" if failed else "migrated",
            from_version=start_version,
            to_version=self.current_version(),
            steps=tuple(steps),
        )
        if failed:
            failed_step = report.failed_step
            _log(
                "error",
                "Schema migration halted at version %s (%s): %s",
                failed_step.version,
                failed_step.kind.value if failed_step.kind else "error",
                failed_step.message,
            )
        else:
            _log("info", "Schema migrated from version %s to %s", report.from_version, report.to_version)
        return report

    def _apply(self, migration: Migration) -> MigrationStepResult:
        try:
            migration.up(self.session.connection())
            self.session.commit()
        except Exception as exc:
            self.session.rollback()
            return MigrationStepResult(
                version=migration.version,
                status="error",
                kind=MigrationErrorKind.FAILED,
                message=str(exc) or exc.__class__.__name__,
            )
        self.store.set(VERSION_KEY, migration.version)
        return MigrationStepResult(version=migration.version, status="success", message=migration.description)

    def rollback(self) -> MigrationReport:
        """
        Run ``down()`` for the current version only and step the counter back.

        Rollback is manual; ``migrate()`` never calls it.
        """
        current = self.current_version()
        if current == 0:
            return MigrationReport(status="up_to_date", from_version=0, to_version=0)

        migration = self.registry.get(current)
        if migration is None or not callable(migration.down):
            step = MigrationStepResult(
                version=current,
                status="error",
                kind=MigrationErrorKind.MISSING if migration is None else MigrationErrorKind.CLASS_MISSING,
                message=f"No down() available for version {current}.",
            )
            return MigrationReport(status="failed", from_version=current, to_version=current, steps=(step,))

        try:
            migration.down(self.session.connection())
            self.session.commit()
        except Exception as exc:
            self.session.rollback()
            step = MigrationStepResult(
                version=current,
                status="error",
                kind=MigrationErrorKind.FAILED,
                message=str(exc) or exc.__class__.__name__,
            )
            return MigrationReport(status="failed", from_version=current, to_version=current, steps=(step,))

        self.store.set(VERSION_KEY, current - 1)
        _log("warning", "Schema rolled back from version %s to %s", current, current - 1)
        step = MigrationStepResult(version=current, status="success", message=f"Rolled back: {migration.description}")
        return MigrationReport(status="rolled_back", from_version=current, to_version=current - 1, steps=(step,))
