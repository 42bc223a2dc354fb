"""Delimited text decoder (``.csv`` and ``.txt``)."""

from __future__ import annotations

import csv
from pathlib import Path

from docrate.importer.registry import register_format

from .base import FormatDecodeError, ParseOptions


@register_format("delimited", ("csv", "txt"))
def read_delimited(path: Path, options: ParseOptions) -> list[list[str]]:
    """Read every record of a delimited text file into a grid of strings."""
    try:
        with open(path, newline="", encoding=options.encoding) as handle:
            reader = csv.reader(handle, delimiter=options.delimiter, quotechar=options.quotechar)
            return [list(record) for record in reader]
    except UnicodeDecodeError as exc:
        raise FormatDecodeError(f"File is not valid {options.encoding} text: {exc}") from exc
    except csv.Error as exc:
        raise FormatDecodeError(f"Malformed delimited text: {exc}") from exc
