import logging

import pytest
from sqlalchemy.exc import OperationalError

from docrate.importer.errors import RunAbortError
from docrate.importer.lock import LOCK_KEY, ImportLock
from docrate.importer.pipeline import ImportOrchestrator
from docrate.importer.pipeline import orchestrator as orchestrator_module
from docrate.models import (
    AIMapping,
    Arrangement,
    Doctor,
    ImportRowResult,
    ImportRowStatus,
    ImportRun,
    ImportRunStatus,
    MappingType,
    Specialty,
    db,
)
from docrate.models.base import utcnow
from docrate.settings_store import DatabaseSettingsStore, InMemorySettingsStore

HEADER = "שם פרטי,שם משפחה,מספר רישיון,טלפון,עיר,התמחות\n"


class FakeClock:
    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def lock_store():
    return InMemorySettingsStore()


@pytest.fixture
def orchestrator(lock_store):
    return ImportOrchestrator(ImportLock(lock_store, clock=FakeClock(), owner_id="test:1:0000"))


def _rows(result):
    return (
        db.session.query(ImportRowResult)
        .filter_by(run_id=result.run_id)
        .order_by(ImportRowResult.source_row_index)
        .all()
    )


def test_five_rows_with_one_blank_name(orchestrator, lock_store, write_csv):
    path = write_csv(
        HEADER
        + "דנה,כהן,MD-1001,050-1111111,חיפה,קרדיולוגיה\n"
        + "אבי,לוי,MD-1002,050-2222222,תל אביב,עור\n"
        + "123,<b></b>,MD-1003,050-3333333,ירושלים,עיניים\n"
        + "Sara,Katz,MD-1004,050-4444444,Haifa,Pediatrics\n"
        + "Noa,Peretz,MD-1005,050-5555555,Eilat,Dermatology\n"
    )

    summary = orchestrator.run(path, source="maccabi")

    assert summary.status is ImportRunStatus.COMPLETED
    assert summary.total_rows == 5
    assert summary.processed_rows == 5
    assert summary.error_count == 1
    assert summary.success_count == 4
    assert summary.new_count == 4
    assert LOCK_KEY not in lock_store

    rows = _rows(summary)
    assert [row.source_row_index for row in rows] == [2, 3, 4, 5, 6]
    failed = rows[2]
    assert failed.status is ImportRowStatus.ERROR
    assert failed.error_message == "Missing required field(s): first_name, last_name"
    assert failed.raw_snapshot["שם פרטי"] == "123"
    assert failed.target_entity_id is None
    assert db.session.query(Doctor).count() == 4


def test_counters_add_up_to_processed_rows(orchestrator, write_csv):
    path = write_csv(
        HEADER
        + "דנה,כהן,MD-1,,,\n"
        + "דנה,כהן,MD-1,,,\n"
        + ",כהן,MD-2,,,\n"
        + "אבי,לוי,MD-3,,,\n"
    )

    summary = orchestrator.run(path, source="clalit")
    run = db.session.get(ImportRun, summary.run_id)

    assert run.success_count + run.error_count + run.skipped_count == run.processed_rows
    assert run.processed_rows <= run.total_rows
    assert (run.new_count, run.error_count, run.skipped_count) == (2, 1, 1)


def test_duplicate_rows_in_one_file_are_skipped(orchestrator, write_csv):
    path = write_csv(HEADER + "דנה,כהן,MD-1001,,,\n" + "Dana,Cohen,MD-1001,,,\n")

    summary = orchestrator.run(path, source="maccabi")

    assert summary.skipped_count == 1
    skipped = _rows(summary)[1]
    assert skipped.status is ImportRowStatus.SKIPPED
    assert skipped.error_message.startswith("Duplicate of row 2")
    assert db.session.query(Doctor).count() == 1


def test_reimport_updates_instead_of_duplicating(orchestrator, write_csv):
    first_path = write_csv(HEADER + "דנה,כהן,MD-1001,050-1111111,חיפה,\n", name="first.csv")
    orchestrator.run(first_path, source="maccabi")

    unchanged = orchestrator.run(first_path, source="maccabi")
    assert (unchanged.new_count, unchanged.updated_count, unchanged.success_count) == (0, 0, 1)

    second_path = write_csv(HEADER + "דנה,כהן,MD-1001,050-9999999,,\n", name="second.csv")
    updated = orchestrator.run(second_path, source="maccabi")

    assert (updated.new_count, updated.updated_count) == (0, 1)
    doctors = db.session.query(Doctor).all()
    assert len(doctors) == 1
    assert doctors[0].phone == "050-9999999"
    # Empty incoming values never erase stored data.
    assert doctors[0].city == "חיפה"


def test_doctors_without_license_match_on_name_and_city(orchestrator, write_csv):
    path = write_csv(HEADER + "Sara,Katz,,050-1,Haifa,\n")
    orchestrator.run(path, source="maccabi")

    licensed = write_csv(HEADER + "Sara,Katz,MD-77,,Haifa,\n", name="licensed.csv")
    summary = orchestrator.run(licensed, source="clalit")

    assert summary.updated_count == 1
    doctor = db.session.query(Doctor).one()
    assert doctor.license_number == "MD-77"
    assert {a.insurance_company for a in doctor.arrangements} == {"maccabi", "clalit"}


def test_arrangement_is_stamped_with_import(orchestrator, write_csv):
    path = write_csv(HEADER + "דנה,כהן,MD-1001,,,\n", name="maccabi-2024.csv")

    first = orchestrator.run(path, source="maccabi")
    second = orchestrator.run(path, source="maccabi")

    arrangements = db.session.query(Arrangement).all()
    assert len(arrangements) == 1
    assert arrangements[0].insurance_company == "maccabi"
    assert arrangements[0].source_file == "maccabi-2024.csv"
    assert arrangements[0].import_id == second.run_id != first.run_id


def test_specialty_uses_approved_mapping_only(orchestrator, write_csv):
    db.session.add_all(
        [
            AIMapping(
                mapping_type=MappingType.SPECIALTY,
                source_value="קרדיולוגיה",
                normalized_value="Cardiology",
                approved_at=utcnow(),
            ),
            AIMapping(mapping_type=MappingType.SPECIALTY, source_value="עור", normalized_value="Dermatology"),
        ]
    )
    db.session.commit()
    path = write_csv(HEADER + "דנה,כהן,MD-1,,,קרדיולוגיה\n" + "אבי,לוי,MD-2,,,עור\n")

    orchestrator.run(path, source="maccabi")

    specialties = {s.source_specialty: s for s in db.session.query(Specialty).all()}
    assert specialties["קרדיולוגיה"].normalized_specialty == "Cardiology"
    assert specialties["קרדיולוגיה"].source_company == "maccabi"
    assert specialties["עור"].normalized_specialty is None


def test_row_fault_is_recorded_and_processing_continues(lock_store, write_csv):
    def lookup(mapping_type, value):
        if value == "Boom":
            raise RuntimeError("lookup service unavailable")
        return None

    orchestrator = ImportOrchestrator(
        ImportLock(lock_store, clock=FakeClock(), owner_id="test:1:0000"),
        mapping_lookup=lookup,
    )
    path = write_csv(HEADER + "דנה,כהן,MD-1,,,Boom\n" + "אבי,לוי,MD-2,,,Fine\n")

    summary = orchestrator.run(path, source="maccabi")

    assert summary.status is ImportRunStatus.COMPLETED
    assert (summary.error_count, summary.new_count) == (1, 1)
    failed = _rows(summary)[0]
    assert failed.error_message == "RuntimeError: lookup service unavailable"
    # The failing row's doctor insert was rolled back with its savepoint.
    assert [d.license_number for d in db.session.query(Doctor).all()] == ["MD-2"]


def test_explicit_column_mapping(orchestrator, write_csv):
    path = write_csv("Given,Family,Reg\nDana,Cohen,MD-5\n")

    summary = orchestrator.run(
        path,
        source="leumit",
        column_mapping={"first_name": "Given", "last_name": "Family", "license_number": "Reg"},
    )

    assert summary.new_count == 1
    assert db.session.query(Doctor).one().license_number == "MD-5"


def test_locked_import_records_failed_run(lock_store, write_csv):
    holder = ImportLock(lock_store, clock=FakeClock(), owner_id="other:2:ffff")
    assert holder.acquire("clalit")
    orchestrator = ImportOrchestrator(ImportLock(lock_store, clock=FakeClock(), owner_id="test:1:0000"))
    path = write_csv(HEADER + "דנה,כהן,MD-1,,,\n")

    summary = orchestrator.run(path, source="maccabi")

    assert summary.status is ImportRunStatus.FAILED
    assert summary.error_kind == "already_locked"
    assert summary.error_message.startswith("Import already running since")
    run = db.session.get(ImportRun, summary.run_id)
    assert run.status is ImportRunStatus.FAILED
    assert db.session.query(Doctor).count() == 0
    assert lock_store.get(LOCK_KEY)["owner_id"] == "other:2:ffff"


def test_parse_failure_marks_run_failed_and_releases_lock(orchestrator, lock_store, tmp_path):
    summary = orchestrator.run(tmp_path / "missing.xlsx", source="maccabi")

    assert summary.status is ImportRunStatus.FAILED
    assert summary.error_kind == "file_not_found"
    assert db.session.get(ImportRun, summary.run_id).completed_at is not None
    assert LOCK_KEY not in lock_store


def test_unexpected_fault_fails_run_and_reraises(orchestrator, lock_store, write_csv, monkeypatch):
    def explode(headers):
        raise RuntimeError("mapping exploded")

    monkeypatch.setattr(orchestrator_module, "detect_column_mapping", explode)
    path = write_csv(HEADER + "דנה,כהן,MD-1,,,\n")

    with pytest.raises(RunAbortError) as excinfo:
        orchestrator.run(path, source="maccabi")

    assert isinstance(excinfo.value.__cause__, RuntimeError)
    assert excinfo.value.run_id is not None

    run = db.session.query(ImportRun).one()
    assert run.status is ImportRunStatus.FAILED
    assert "mapping exploded" in run.error_message
    assert LOCK_KEY not in lock_store


def test_row_failure_logs_masked_phone(orchestrator, write_csv, caplog):
    path = write_csv(HEADER + ",כהן,MD-1,050-1234567,,\n")

    with caplog.at_level(logging.WARNING):
        orchestrator.run(path, source="maccabi")

    assert "050-***-4567" in caplog.text
    assert "1234567" not in caplog.text


def test_database_lock_store_end_to_end(write_csv):
    store = DatabaseSettingsStore()
    orchestrator = ImportOrchestrator(ImportLock(store, owner_id="test:1:0000"))
    path = write_csv(HEADER + "דנה,כהן,MD-1,,,\n")

    summary = orchestrator.run(path, source="maccabi")

    assert summary.ok
    assert store.get(LOCK_KEY) is None


def test_source_is_required(orchestrator, write_csv):
    with pytest.raises(ValueError):
        orchestrator.run(write_csv(HEADER), source="  ")


def test_settings_store_error_during_lock_records_failed_run(write_csv):
    class LockedStore(InMemorySettingsStore):
        def add(self, key, value):
            raise OperationalError("INSERT INTO app_settings", {}, Exception("database is locked"))

    orchestrator = ImportOrchestrator(ImportLock(LockedStore(), clock=FakeClock(), owner_id="test:1:0000"))

    summary = orchestrator.run(write_csv(HEADER + "דנה,כהן,MD-1,,,\n"), source="maccabi")

    assert summary.status is ImportRunStatus.FAILED
    assert summary.error_kind == "lock_failed"
    assert "database is locked" in summary.error_message
    assert db.session.query(Doctor).count() == 0


def test_source_and_filename_are_sanitized_before_storage(orchestrator, write_csv):
    path = write_csv(HEADER + "דנה,כהן,MD-1,,,\n", name="<i>maccabi 2024.csv")

    summary = orchestrator.run(path, source=" <b>maccabi</b>  ")

    run = db.session.get(ImportRun, summary.run_id)
    assert (run.source, run.filename) == ("maccabi", "maccabi 2024.csv")
    arrangement = db.session.query(Arrangement).one()
    assert (arrangement.insurance_company, arrangement.source_file) == ("maccabi", "maccabi 2024.csv")


def test_markup_only_source_is_rejected(orchestrator, write_csv):
    with pytest.raises(ValueError):
        orchestrator.run(write_csv(HEADER), source="<b></b>")


def test_long_valid_email_is_stored_in_full(orchestrator, write_csv):
    domain = ".".join(["a" * 60, "b" * 60, "c" * 60]) + ".co.il"
    email = f"dana.cohen@{domain}"
    assert 100 < len(email) <= 254
    path = write_csv("שם פרטי,שם משפחה,מספר רישיון,אימייל\n" + f"דנה,כהן,MD-1,{email}\n")

    summary = orchestrator.run(path, source="maccabi")

    assert summary.new_count == 1
    assert db.session.query(Doctor).one().email == email
