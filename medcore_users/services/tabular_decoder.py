from __future__ import annotations

import csv
from datetime import datetime
import io
import json
import logging
import re
from typing import Any
import zipfile

import openpyxl
from openpyxl.utils.exceptions import InvalidFileException
import xlrd

from medcore_users.config import ACCEPTED_EXTENSIONS
from medcore_users.exceptions import (
    EmptyWorkbookError,
    MalformedFileError,
    UnreadableWorkbookError,
    UnsupportedFormatError,
)

logger = logging.getLogger(__name__)

RawRow = dict[str, Any]

SUPPORTED_EXTENSIONS = frozenset(extension.lstrip(".") for extension in ACCEPTED_EXTENSIONS)
DELIMITER_CHARS = re.compile(r"[,;\t]")


def decode(raw_bytes: bytes, filename: str) -> list[RawRow]:
    """Decode an uploaded file into ordered rows keyed by source column name."""
    extension = file_extension(filename)
    if extension not in SUPPORTED_EXTENSIONS:
        raise UnsupportedFormatError(filename)

    if extension == "csv":
        rows = _decode_csv(raw_bytes)
    elif extension == "xlsx":
        rows = _decode_xlsx(raw_bytes)
    elif extension == "xls":
        rows = _decode_xls(raw_bytes)
    else:
        rows = _decode_json(raw_bytes)

    logger.info("Decoded %s rows from %s", len(rows), filename)
    return rows


def file_extension(filename: str) -> str | None:
    if "." not in filename:
        return None
    extension = filename.rsplit(".", 1)[1].strip().lower()
    return extension or None


# CSV


def decode_text(raw_bytes: bytes) -> str:
    """Turn CSV bytes into text, honouring UTF-16 byte-order marks."""
    if raw_bytes[:2] == b"\xff\xfe":
        text = raw_bytes.decode("utf-16-le", errors="replace")
    elif raw_bytes[:2] == b"\xfe\xff":
        body = raw_bytes[2:]
        text = body[: len(body) - len(body) % 2].decode("utf-16-be", errors="replace")
    else:
        text = raw_bytes.decode("utf-8", errors="replace")
        # Embedded NULs mean UTF-16LE without a BOM.
        if "\x00" in text:
            text = raw_bytes.decode("utf-16-le", errors="replace")
    return text.removeprefix("\ufeff")


def detect_delimiter(first_line: str) -> str:
    commas = first_line.count(",")
    semicolons = first_line.count(";")
    tabs = first_line.count("\t")
    if semicolons >= commas and semicolons >= tabs:
        return ";"
    if tabs > commas:
        return "\t"
    return ","


def _decode_csv(raw_bytes: bytes) -> list[RawRow]:
    text = decode_text(raw_bytes)
    first_line = re.split(r"\r?\n", text, maxsplit=1)[0]
    candidates = [detect_delimiter(first_line), ",", ";", "\t"]

    for delimiter in candidates:
        try:
            header, rows = _parse_delimited(text, delimiter)
        except csv.Error as exc:
            logger.debug("CSV parse with delimiter %r failed: %s", delimiter, exc)
            continue
        if len(header) == 1 and DELIMITER_CHARS.search(header[0]):
            continue
        return rows

    try:
        return _parse_delimited(text, ",")[1]
    except csv.Error as exc:
        raise MalformedFileError(str(exc)) from exc


def _parse_delimited(text: str, delimiter: str) -> tuple[list[str], list[RawRow]]:
    reader = csv.reader(io.StringIO(text, newline=""), delimiter=delimiter, strict=True)
    header: list[str] | None = None
    rows: list[RawRow] = []
    for cells in reader:
        if not cells:
            continue
        if header is None:
            header = [cell.strip() for cell in cells]
            continue
        rows.append({column: value.strip() for column, value in zip(header, cells)})
    return header or [], rows


# Spreadsheets


def _decode_xlsx(raw_bytes: bytes) -> list[RawRow]:
    try:
        workbook = openpyxl.load_workbook(io.BytesIO(raw_bytes), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as exc:
        raise UnreadableWorkbookError(str(exc)) from exc

    try:
        if not workbook.sheetnames:
            raise EmptyWorkbookError()
        sheet = workbook[workbook.sheetnames[0]]
        return _rows_from_grid(list(sheet.iter_rows(values_only=True)))
    finally:
        workbook.close()


def _decode_xls(raw_bytes: bytes) -> list[RawRow]:
    try:
        workbook = xlrd.open_workbook(file_contents=raw_bytes)
    except xlrd.XLRDError as exc:
        raise UnreadableWorkbookError(str(exc)) from exc

    if workbook.nsheets == 0:
        raise EmptyWorkbookError()
    sheet = workbook.sheet_by_index(0)
    grid = [
        [_xls_cell_value(cell, workbook.datemode) for cell in sheet.row(index)]
        for index in range(sheet.nrows)
    ]
    return _rows_from_grid(grid)


def _xls_cell_value(cell: xlrd.sheet.Cell, datemode: int) -> Any:
    if cell.ctype in (xlrd.XL_CELL_EMPTY, xlrd.XL_CELL_BLANK):
        return None
    if cell.ctype == xlrd.XL_CELL_DATE:
        return xlrd.xldate_as_datetime(cell.value, datemode)
    if cell.ctype == xlrd.XL_CELL_NUMBER and float(cell.value).is_integer():
        return int(cell.value)
    return cell.value


def _rows_from_grid(grid: list[Any]) -> list[RawRow]:
    """Map a header row plus data rows onto dicts; missing cells become ''."""
    rows = iter(grid)
    header_cells = next(rows, None)
    if header_cells is None:
        return []
    header = ["" if value is None else str(value).strip() for value in header_cells]

    decoded: list[RawRow] = []
    for cells in rows:
        if all(value is None for value in cells):
            continue
        row: RawRow = {}
        for position, column in enumerate(header):
            if not column:
                continue
            value = cells[position] if position < len(cells) else None
            row[column] = _clean_cell(value)
        decoded.append(row)
    return decoded


def _clean_cell(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, datetime) and value.time() == datetime.min.time():
        return value.date()
    return value


# JSON


def _decode_json(raw_bytes: bytes) -> list[RawRow]:
    try:
        payload = json.loads(raw_bytes.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise MalformedFileError(str(exc)) from exc

    if not isinstance(payload, list):
        raise MalformedFileError("JSON content must be an array of objects")
    for position, item in enumerate(payload):
        if not isinstance(item, dict):
            raise MalformedFileError(f"JSON item {position} is not an object")
    return payload
