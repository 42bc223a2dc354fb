"""
Importer configuration helpers shared by the CLI and the orchestrator wiring.
"""

from __future__ import annotations

from pathlib import Path

from flask import current_app

from docrate.importer.lock import DEFAULT_LOCK_TTL_SECONDS, ImportLock
from docrate.settings_store import DatabaseSettingsStore, SettingsStore

DEFAULT_UPLOAD_SUBDIR = "import_uploads"


def _get_config(app=None):
    if app is not None:
        return app.config
    return current_app.config


def is_importer_enabled(app=None) -> bool:
    """Return True when the importer feature flag is enabled."""
    config = _get_config(app)
    return bool(config.get("IMPORTER_ENABLED", True))


def get_lock_ttl(app=None) -> int:
    config = _get_config(app)
    try:
        ttl = int(config.get("IMPORT_LOCK_TTL_SECONDS", DEFAULT_LOCK_TTL_SECONDS))
    except (TypeError, ValueError):
        return DEFAULT_LOCK_TTL_SECONDS
    return ttl if ttl > 0 else DEFAULT_LOCK_TTL_SECONDS


def build_import_lock(app=None, store: SettingsStore | None = None) -> ImportLock:
    """Create an ``ImportLock`` over the shared database settings store."""
    return ImportLock(store or DatabaseSettingsStore(), ttl=get_lock_ttl(app))


def resolve_upload_directory(app) -> Path:
    """
    Determine the directory operators drop insurer files into.
    """
    configured = app.config.get("IMPORTER_UPLOAD_DIR")
    if not configured:
        return Path(app.instance_path) / DEFAULT_UPLOAD_SUBDIR
    candidate = Path(configured)
    if candidate.is_absolute():
        return candidate
    return Path(app.instance_path) / candidate


def resolve_import_file(app, file_path: str | Path) -> Path:
    """
    Resolve an import file path.

    Relative paths that do not exist from the working directory are looked up
    in the upload directory before giving up; the parser reports the miss.
    """
    path = Path(file_path)
    if path.is_absolute() or path.exists():
        return path.resolve()
    candidate = resolve_upload_directory(app) / path
    if candidate.exists():
        return candidate.resolve()
    return path
