# conftest.py

import os
import tempfile
import uuid

import pytest

# Set testing environment BEFORE importing the app package
os.environ["FLASK_ENV"] = "testing"

from config import TestingConfig  # noqa: E402
from docrate import create_app  # noqa: E402
from docrate.database import MigrationRunner  # noqa: E402
from docrate.models import db  # noqa: E402
from docrate.settings_store import DatabaseSettingsStore  # noqa: E402


def _remove_database_files(db_fd, temp_db):
    try:
        os.close(db_fd)
    except OSError:
        pass
    # WAL mode leaves sidecar files next to the database
    for path in (temp_db, f"{temp_db}-wal", f"{temp_db}-shm"):
        try:
            if os.path.exists(path):
                os.unlink(path)
        except OSError:
            pass


def _build_app(temp_db, **overrides):
    config = {"SQLALCHEMY_DATABASE_URI": f"sqlite:///{temp_db}"}
    config.update(overrides)
    return create_app(TestingConfig, config)


@pytest.fixture(scope="function")
def app(tmp_path):
    """Create an application on its own migrated SQLite database."""
    db_fd, temp_db = tempfile.mkstemp(suffix=f"_{uuid.uuid4().hex[:8]}.db")
    try:
        flask_app = _build_app(temp_db, IMPORTER_UPLOAD_DIR=str(tmp_path / "uploads"))
        with flask_app.app_context():
            report = MigrationRunner(DatabaseSettingsStore()).migrate()
            assert report.ok, report.as_dict()
            yield flask_app
            db.session.remove()
            db.drop_all()
    finally:
        _remove_database_files(db_fd, temp_db)


@pytest.fixture
def unmigrated_app():
    """Application on an empty database, for exercising the migration chain."""
    db_fd, temp_db = tempfile.mkstemp(suffix=f"_{uuid.uuid4().hex[:8]}.db")
    try:
        flask_app = _build_app(temp_db)
        with flask_app.app_context():
            yield flask_app
            db.session.remove()
            db.drop_all()
    finally:
        _remove_database_files(db_fd, temp_db)


@pytest.fixture(autouse=True)
def app_context(app):
    """Automatically provide app context for all tests"""
    with app.app_context():
        yield


@pytest.fixture
def runner(app):
    """Create a test CLI runner for the Flask application"""
    return app.test_cli_runner()


@pytest.fixture
def write_csv(tmp_path):
    """Write a UTF-8 CSV file and return its path."""

    def _write(contents, name="directory.csv", encoding="utf-8"):
        path = tmp_path / name
        path.write_text(contents, encoding=encoding)
        return path

    return _write
