from __future__ import annotations

from datetime import date, datetime
import io
import json

import openpyxl
import pytest

from medcore_users.config import ACCEPTED_EXTENSIONS
from medcore_users.exceptions import MalformedFileError, UnreadableWorkbookError, UnsupportedFormatError
from medcore_users.services.tabular_decoder import SUPPORTED_EXTENSIONS, decode, decode_text, detect_delimiter


@pytest.mark.parametrize(
    ("first_line", "expected"),
    [
        ("a;b;c", ";"),
        ("a,b;c,d;e,f", ";"),
        ("a,b,c", ","),
        ("a\tb\tc", "\t"),
        ("single", ";"),
    ],
)
def test_detect_delimiter(first_line: str, expected: str) -> None:
    assert detect_delimiter(first_line) == expected


def test_decode_semicolon_csv_trims_headers_and_cells() -> None:
    content = " email ; fullname \n ana@x.com ;  Ana Gomez \n"

    rows = decode(content.encode("utf-8"), "users.csv")

    assert rows == [{"email": "ana@x.com", "fullname": "Ana Gomez"}]


def test_decode_csv_skips_empty_lines_but_keeps_rows_of_empty_cells() -> None:
    content = "email,fullname\n\nana@x.com,Ana\n,\n"

    rows = decode(content.encode("utf-8"), "users.csv")

    assert rows == [{"email": "ana@x.com", "fullname": "Ana"}, {"email": "", "fullname": ""}]


def test_decode_falls_back_to_next_delimiter_on_parse_error() -> None:
    # Semicolons inside a quoted header win the count but the file is comma separated.
    content = '"role;alias;x",email\ndoctor,ana@x.com\n'

    rows = decode(content.encode("utf-8"), "users.csv")

    assert rows == [{"role;alias;x": "doctor", "email": "ana@x.com"}]


def test_decode_retries_when_header_collapses_to_one_column() -> None:
    # An empty first line sniffs as semicolon, which leaves "email,role" as a single column.
    content = "\nemail,role\nana@x.com,doctor\n"

    rows = decode(content.encode("utf-8"), "users.csv")

    assert rows == [{"email": "ana@x.com", "role": "doctor"}]


def test_decode_uses_plain_comma_parse_when_every_delimiter_collapses() -> None:
    content = '"email,role"\n"ana@x.com,doctor"\n'

    rows = decode(content.encode("utf-8"), "users.csv")

    assert rows == [{"email,role": "ana@x.com,doctor"}]


def test_supported_extensions_follow_accepted_uploads() -> None:
    assert SUPPORTED_EXTENSIONS == {extension.lstrip(".") for extension in ACCEPTED_EXTENSIONS}
    assert SUPPORTED_EXTENSIONS == {"csv", "xlsx", "xls", "json"}


def test_decode_strips_utf8_bom() -> None:
    content = "\ufeffemail,role\nana@x.com,doctor\n".encode("utf-8")

    assert decode(content, "users.csv") == [{"email": "ana@x.com", "role": "doctor"}]


def test_decode_text_utf16_le_bom() -> None:
    raw = b"\xff\xfe" + "email,role\nana@x.com,doctor\n".encode("utf-16-le")

    assert decode_text(raw) == "email,role\nana@x.com,doctor\n"


def test_decode_text_utf16_be_bom() -> None:
    raw = b"\xfe\xff" + "email;role".encode("utf-16-be")

    assert decode_text(raw) == "email;role"


def test_decode_text_redecodes_nul_bytes_as_utf16_le() -> None:
    raw = "email,role\n".encode("utf-16-le")

    assert decode_text(raw) == "email,role\n"


def test_decode_xlsx_reads_first_sheet_only() -> None:
    workbook = openpyxl.Workbook()
    sheet = workbook.active
    sheet.append(["email", " fullname ", "dateOfBirth", "phone"])
    sheet.append(["ana@x.com", " Ana Gomez ", datetime(1990, 1, 15), 5551234])
    sheet.append([None, None, None, None])
    sheet.append(["luis@x.com", "Luis Perez"])
    other = workbook.create_sheet("ignored")
    other.append(["email"])
    other.append(["nobody@x.com"])
    buffer = io.BytesIO()
    workbook.save(buffer)

    rows = decode(buffer.getvalue(), "users.xlsx")

    assert rows == [
        {"email": "ana@x.com", "fullname": "Ana Gomez", "dateOfBirth": date(1990, 1, 15), "phone": 5551234},
        {"email": "luis@x.com", "fullname": "Luis Perez", "dateOfBirth": "", "phone": ""},
    ]


def test_decode_xlsx_rejects_garbage() -> None:
    with pytest.raises(UnreadableWorkbookError):
        decode(b"definitely not a zip archive", "users.xlsx")


def test_decode_json_array() -> None:
    payload = [{"email": "ana@x.com", "role": "MEDICO", "medico": {"licencia": "L-1"}}]

    assert decode(json.dumps(payload).encode("utf-8"), "users.JSON") == payload


@pytest.mark.parametrize("payload", [b"{\"email\": \"ana@x.com\"}", b"[1, 2]", b"[{"])
def test_decode_json_rejects_non_array_payloads(payload: bytes) -> None:
    with pytest.raises(MalformedFileError):
        decode(payload, "users.json")


@pytest.mark.parametrize("filename", ["users.txt", "users", "users.csv.exe", ""])
def test_decode_unsupported_extension(filename: str) -> None:
    with pytest.raises(UnsupportedFormatError):
        decode(b"email\nana@x.com\n", filename)
