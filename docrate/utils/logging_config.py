"""
Application logging setup.

Console and rotating-file handlers are attached to the Flask app logger and
to the ``docrate`` package logger so module-level loggers used outside an app
context end up in the same place.
"""

import logging
import os
from logging.handlers import RotatingFileHandler

import structlog

TEXT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

# Applied to records from plain `logging` calls before rendering.
JSON_PRE_CHAIN = (
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso", utc=True),
)


def build_json_formatter():
    """One JSON object per record, for log shippers."""
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=list(JSON_PRE_CHAIN),
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ],
    )


def build_formatter(app):
    if str(app.config.get("LOG_FORMAT", "text")).lower() == "json":
        return build_json_formatter()
    return logging.Formatter(TEXT_FORMAT)


def _resolve_level(app):
    level = logging.getLevelName(str(app.config.get("LOG_LEVEL", "INFO")).upper())
    return level if isinstance(level, int) else logging.INFO


def setup_logging(app):
    """Configure handlers and levels from app config. Safe to call repeatedly."""
    level = _resolve_level(app)
    formatter = build_formatter(app)
    handlers = []

    if app.config.get("ENABLE_CONSOLE_LOGGING", True):
        console = logging.StreamHandler()
        console.setFormatter(formatter)
        handlers.append(console)

    if app.config.get("ENABLE_FILE_LOGGING", False):
        log_dir = app.config.get("LOG_DIR", "logs")
        os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            os.path.join(log_dir, "docrate.log"),
            maxBytes=app.config.get("LOG_FILE_MAX_BYTES", 10485760),
            backupCount=app.config.get("LOG_FILE_BACKUP_COUNT", 10),
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    package_logger = logging.getLogger("docrate")
    targets = [app.logger] if app.logger is package_logger else [app.logger, package_logger]
    for target in targets:
        for handler in list(target.handlers):
            if getattr(handler, "_docrate_handler", False):
                target.removeHandler(handler)
        for handler in handlers:
            handler._docrate_handler = True
            target.addHandler(handler)
        target.setLevel(level)

    app.logger.debug("Logging configured at level %s", logging.getLevelName(level))
