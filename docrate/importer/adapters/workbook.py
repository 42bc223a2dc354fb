"""Spreadsheet decoders: ``.xlsx``/``.xlsm`` through openpyxl, ``.xls`` through xlrd."""

from __future__ import annotations

from datetime import date, datetime, time
from pathlib import Path

from docrate.importer.registry import load_optional_dependency, register_format

from .base import FormatDecodeError, ParseOptions


def stringify_cell(value: object) -> str:
    """Render a decoded cell the way it reads in the spreadsheet."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, datetime):
        if value.time() == time(0, 0):
            return value.date().isoformat()
        return value.isoformat()
    if isinstance(value, (date, time)):
        return value.isoformat()
    return str(value)


def _check_sheet_index(index: int, count: int) -> None:
    if index >= count:
        raise FormatDecodeError(f"Sheet index {index} is out of range; the workbook has {count} sheet(s).")


@register_format("xlsx", ("xlsx", "xlsm"), optional_dependency="openpyxl", spreadsheet=True)
def read_xlsx(path: Path, options: ParseOptions) -> list[list[str]]:
    openpyxl = load_optional_dependency("openpyxl")
    workbook = openpyxl.load_workbook(path, read_only=True, data_only=True)
    try:
        _check_sheet_index(options.sheet_index, len(workbook.worksheets))
        sheet = workbook.worksheets[options.sheet_index]
        return [[stringify_cell(value) for value in row] for row in sheet.iter_rows(values_only=True)]
    finally:
        workbook.close()


@register_format("xls", ("xls",), optional_dependency="xlrd", spreadsheet=True)
def read_xls(path: Path, options: ParseOptions) -> list[list[str]]:
    xlrd = load_optional_dependency("xlrd")
    book = xlrd.open_workbook(str(path), on_demand=True)
    try:
        _check_sheet_index(options.sheet_index, book.nsheets)
        sheet = book.sheet_by_index(options.sheet_index)
        grid: list[list[str]] = []
        for row_index in range(sheet.nrows):
            cells = []
            for cell in sheet.row(row_index):
                value = cell.value
                if cell.ctype == xlrd.XL_CELL_DATE:
                    value = xlrd.xldate.xldate_as_datetime(value, book.datemode)
                elif cell.ctype == xlrd.XL_CELL_BOOLEAN:
                    value = bool(value)
                cells.append(stringify_cell(value))
            grid.append(cells)
        return grid
    finally:
        book.release_resources()
