"""
Insurer file parsers.

``parse`` dispatches on the file extension through the format registry and
always returns either a ``ParsedFile`` or a ``ParseFailure``; it never raises
for a bad input file.
"""

from __future__ import annotations

from pathlib import Path

from flask import current_app, has_app_context

from docrate.importer.registry import (
    get_optional_dependency_error,
    load_optional_dependency,
    resolve_format,
    supported_extensions,
)

from . import delimited, workbook  # noqa: F401 - registers formats
from .base import (
    FormatDecodeError,
    ParsedFile,
    ParsedRow,
    ParseErrorKind,
    ParseFailure,
    ParseOptions,
    extract_rows,
)
from .workbook import stringify_cell


def _log_failure(failure: ParseFailure) -> ParseFailure:
    if has_app_context():
        current_app.logger.warning(f"Parse failed ({failure.kind.value}): {failure.message}")
    return failure


def parse(path: str | Path, options: ParseOptions | None = None) -> ParsedFile | ParseFailure:
    """Parse ``path`` into headers and keyed rows."""
    path = Path(path)
    options = options or ParseOptions()

    if not path.is_file():
        return _log_failure(ParseFailure(ParseErrorKind.FILE_NOT_FOUND, f"File not found: {path}"))

    descriptor = resolve_format(path)
    if descriptor is None:
        extension = path.suffix.lower().lstrip(".") or "(none)"
        return _log_failure(
            ParseFailure(
                ParseErrorKind.UNSUPPORTED_FORMAT,
                f"Unsupported file format: {extension}. Supported: {', '.join(supported_extensions())}.",
            )
        )

    if descriptor.optional_dependency and load_optional_dependency(descriptor.optional_dependency) is None:
        error = get_optional_dependency_error(descriptor.optional_dependency)
        return _log_failure(
            ParseFailure(
                ParseErrorKind.LIBRARY_MISSING,
                f"The '{descriptor.optional_dependency}' library is required to read .{path.suffix.lower().lstrip('.')} "
                f"files ({error}). Install it with pip.",
            )
        )

    try:
        grid = descriptor.parse(path, options)
        headers, rows = extract_rows(grid, options, keep_blank_headers=not descriptor.spreadsheet)
    except Exception as exc:
        return _log_failure(ParseFailure(ParseErrorKind.PARSE_ERROR, f"Failed to parse {path.name}: {exc}"))

    return ParsedFile(headers=headers, rows=rows, filename=path.name, format=descriptor.name)


__all__ = [
    "FormatDecodeError",
    "ParsedFile",
    "ParsedRow",
    "ParseErrorKind",
    "ParseFailure",
    "ParseOptions",
    "extract_rows",
    "parse",
    "stringify_cell",
]
