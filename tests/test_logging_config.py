import json
import logging

import structlog

from config import TestingConfig
from docrate import create_app
from docrate.utils.logging_config import build_formatter


def _record(message, *args):
    return logging.LogRecord("docrate.importer", logging.WARNING, __file__, 10, message, args, None)


def test_json_format_renders_one_object_per_record(app):
    app.config["LOG_FORMAT"] = "json"

    payload = json.loads(build_formatter(app).format(_record("Import run %s failed for %s", 7, "מכבי")))

    assert payload["event"] == "Import run 7 failed for מכבי"
    assert payload["level"] == "warning"
    assert payload["logger"] == "docrate.importer"
    assert "timestamp" in payload


def test_text_format_is_the_default(app):
    line = build_formatter(app).format(_record("Import lock released by %s.", "host:1:aaaa"))

    assert "WARNING [docrate.importer] Import lock released by host:1:aaaa." in line


def test_setup_logging_installs_one_json_console_handler(tmp_path):
    overrides = {
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'logging.db'}",
        "LOG_FORMAT": "json",
        "ENABLE_CONSOLE_LOGGING": True,
    }
    application = create_app(TestingConfig, overrides)
    create_app(TestingConfig, overrides)

    handlers = [h for h in application.logger.handlers if getattr(h, "_docrate_handler", False)]
    assert len(handlers) == 1
    assert isinstance(handlers[0].formatter, structlog.stdlib.ProcessorFormatter)
