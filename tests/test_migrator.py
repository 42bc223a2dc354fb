from sqlalchemy import inspect

from docrate.database import VERSION_KEY, Migration, MigrationErrorKind, MigrationRunner
from docrate.database.migrations import MIGRATIONS, m0001_initial_schema
from docrate.models import Doctor, db
from docrate.settings_store import DatabaseSettingsStore, InMemorySettingsStore


def _columns(table):
    return {column["name"] for column in inspect(db.engine).get_columns(table)}


def _noop(connection):
    return None


def test_fresh_database_migrates_to_latest(unmigrated_app):
    store = DatabaseSettingsStore()
    runner = MigrationRunner(store)
    assert runner.current_version() == 0
    assert runner.pending()

    report = runner.migrate()

    assert report.status == "migrated"
    assert report.from_version == 0
    assert report.to_version == len(MIGRATIONS)
    assert report.completed_versions == tuple(m.version for m in MIGRATIONS)
    assert store.get(VERSION_KEY) == runner.latest_version
    tables = set(inspect(db.engine).get_table_names())
    assert {"doctors", "specialties", "arrangements", "import_logs", "import_rows", "ai_mappings"} <= tables
    assert "skipped_count" in _columns("import_logs")


def test_second_migrate_is_up_to_date(unmigrated_app):
    runner = MigrationRunner(DatabaseSettingsStore())
    runner.migrate()

    report = runner.migrate()

    assert report.status == "up_to_date"
    assert report.steps == ()
    assert not runner.pending()


def test_gap_in_registry_halts_with_migration_missing():
    calls = []
    store = InMemorySettingsStore()
    runner = MigrationRunner(
        store,
        [
            Migration(1, "one", lambda conn: calls.append(1)),
            Migration(3, "three", lambda conn: calls.append(3)),
        ],
    )

    report = runner.migrate()

    assert report.status == "failed"
    assert report.completed_versions == (1,)
    assert report.failed_step.version == 2
    assert report.failed_step.kind is MigrationErrorKind.MISSING
    assert calls == [1]
    assert store.get(VERSION_KEY) == 1


def test_migration_without_up_reports_class_missing():
    store = InMemorySettingsStore()
    report = MigrationRunner(store, [Migration(1, "broken", None)]).migrate()

    assert report.failed_step.kind is MigrationErrorKind.CLASS_MISSING
    assert store.get(VERSION_KEY) is None


def test_failed_migration_stops_chain_and_resumes_after_fix():
    store = InMemorySettingsStore()
    attempts = {"count": 0}

    def flaky(connection):
        attempts["count"] += 1
        if attempts["count"] == 1:
            raise RuntimeError("column already exists")

    migrations = [Migration(1, "one", _noop), Migration(2, "two", flaky), Migration(3, "three", _noop)]

    first = MigrationRunner(store, migrations).migrate()

    assert first.status == "failed"
    assert first.completed_versions == (1,)
    assert first.failed_step.version == 2
    assert first.failed_step.kind is MigrationErrorKind.FAILED
    assert "column already exists" in first.failed_step.message
    assert store.get(VERSION_KEY) == 1
    assert MigrationRunner(store, migrations).pending()

    second = MigrationRunner(store, migrations).migrate()

    assert second.status == "migrated"
    assert second.from_version == 1
    assert second.completed_versions == (2, 3)
    assert store.get(VERSION_KEY) == 3


def test_report_as_dict_shape():
    report = MigrationRunner(InMemorySettingsStore(), [Migration(1, "one", _noop)]).migrate()

    assert report.as_dict() == {
        "status": "migrated",
        "from_version": 0,
        "to_version": 1,
        "migrations": [{"version": 1, "status": "success", "kind": None, "message": "one"}],
    }


def test_initial_schema_predates_skipped_count(unmigrated_app):
    store = DatabaseSettingsStore()
    MigrationRunner(store, MIGRATIONS[:1]).migrate()
    assert store.get(VERSION_KEY) == 1
    assert "skipped_count" not in _columns("import_logs")

    report = MigrationRunner(store).migrate()

    assert report.completed_versions == (2,)
    assert "skipped_count" in _columns("import_logs")


def test_initial_migration_fills_in_partially_created_schema(unmigrated_app):
    db.metadata.tables["doctors"].create(bind=db.engine)

    report = MigrationRunner(DatabaseSettingsStore()).migrate()

    assert report.status == "migrated"
    tables = set(inspect(db.engine).get_table_names())
    assert {"doctors", "specialties", "arrangements", "import_logs", "import_rows", "ai_mappings"} <= tables


def test_initial_schema_matches_doctor_email_width():
    assert Doctor.__table__.c.email.type.length == 254
    assert m0001_initial_schema.doctors.c.email.type.length == 254


def test_rollback_runs_down_for_current_version_only(unmigrated_app):
    store = DatabaseSettingsStore()
    runner = MigrationRunner(store)
    runner.migrate()

    report = runner.rollback()

    assert report.status == "rolled_back"
    assert report.from_version == 2
    assert report.to_version == 1
    assert store.get(VERSION_KEY) == 1
    assert "skipped_count" not in _columns("import_logs")
    assert inspect(db.engine).has_table("doctors")
