"""
Doctor directory importer.

``init_importer`` mounts the ``flask importer`` commands (or a placeholder
group when ``IMPORTER_ENABLED`` is off) and records importer state under
``app.extensions['importer']``.
"""

from __future__ import annotations

from flask import Flask

from .registry import supported_extensions

IMPORTER_EXTENSION_KEY = "importer"

__all__ = [
    "IMPORTER_EXTENSION_KEY",
    "init_importer",
]


def _importer_state(app: Flask) -> dict:
    return app.extensions.setdefault(
        IMPORTER_EXTENSION_KEY,
        {"enabled": False, "lock_ttl_seconds": None, "formats": (), "upload_dir": None},
    )


def _register_commands(app: Flask, enabled: bool) -> None:
    from .cli import get_disabled_importer_group, importer_cli

    # create_app may run more than once per process (tests).
    app.cli.commands.pop(importer_cli.name, None)
    app.cli.add_command(importer_cli if enabled else get_disabled_importer_group())


def init_importer(app: Flask) -> None:
    """Register importer commands and state according to configuration."""
    from docrate.utils.importer import get_lock_ttl, is_importer_enabled, resolve_upload_directory

    # Loading the adapters registers every file format.
    from . import adapters  # noqa: F401

    enabled = is_importer_enabled(app)
    _importer_state(app).update(
        enabled=enabled,
        lock_ttl_seconds=get_lock_ttl(app),
        formats=supported_extensions(),
        upload_dir=str(resolve_upload_directory(app)),
    )
    _register_commands(app, enabled)
    if enabled:
        app.logger.info("Importer enabled for formats: %s", ", ".join(supported_extensions()))
    else:
        app.logger.info("Importer disabled via IMPORTER_ENABLED; 'flask importer' only reports that.")
