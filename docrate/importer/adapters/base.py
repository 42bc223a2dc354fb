"""Shared parser types and the row extraction every format goes through."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Iterable, Sequence, Tuple

from docrate.importer.errors import ImporterError


class ParseErrorKind(str, enum.Enum):
    FILE_NOT_FOUND = "file_not_found"
    UNSUPPORTED_FORMAT = "unsupported_format"
    LIBRARY_MISSING = "library_missing"
    PARSE_ERROR = "parse_error"


class FormatDecodeError(ImporterError):
    """Raised by a format decoder when the file content cannot be read."""


@dataclass(frozen=True)
class ParseFailure:
    """Typed parse failure returned instead of raised."""

    kind: ParseErrorKind
    message: str

    ok = False

    def as_dict(self) -> dict:
        return {"kind": self.kind.value, "message": self.message}


@dataclass(frozen=True)
class ParseOptions:
    """Options honoured by every format; ``header_row`` is 1-based."""

    delimiter: str = ","
    quotechar: str = '"'
    header_row: int = 1
    sheet_index: int = 0
    skip_empty: bool = True
    encoding: str = "utf-8-sig"

    def __post_init__(self) -> None:
        if self.header_row < 1:
            raise ValueError("header_row must be 1 or greater.")
        if self.sheet_index < 0:
            raise ValueError("sheet_index must be 0 or greater.")
        if len(self.delimiter) != 1:
            raise ValueError("delimiter must be a single character.")
        if len(self.quotechar) != 1:
            raise ValueError("quotechar must be a single character.")


@dataclass(frozen=True)
class ParsedRow:
    """One data row keyed by header, with its true 1-based file row number."""

    row_number: int
    fields: dict[str, str]


@dataclass
class ParsedFile:
    headers: Tuple[str, ...]
    rows: list[ParsedRow] = field(default_factory=list)
    filename: str = ""
    format: str = ""

    ok = True

    @property
    def total_rows(self) -> int:
        return len(self.rows)


def _is_blank(cells: Sequence[str]) -> bool:
    return all(not cell.strip() for cell in cells)


def extract_rows(
    grid: Iterable[Sequence[str]],
    options: ParseOptions,
    *,
    keep_blank_headers: bool,
) -> tuple[Tuple[str, ...], list[ParsedRow]]:
    """
    Turn a decoded grid of string cells into headers and keyed rows.

    Rows above ``header_row`` are ignored. Short rows are padded with ``""``.
    When ``keep_blank_headers`` is false, columns under a blank header produce
    no field.
    """
    headers: Tuple[str, ...] = ()
    rows: list[ParsedRow] = []

    for row_number, cells in enumerate(grid, start=1):
        if row_number < options.header_row:
            continue
        cells = list(cells)
        if row_number == options.header_row:
            headers = tuple(cell.strip() for cell in cells)
            continue
        if options.skip_empty and _is_blank(cells):
            continue

        fields: dict[str, str] = {}
        for index, header in enumerate(headers):
            if not header and not keep_blank_headers:
                continue
            fields[header] = cells[index] if index < len(cells) else ""
        rows.append(ParsedRow(row_number=row_number, fields=fields))

    return headers, rows
