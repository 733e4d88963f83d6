from __future__ import annotations

import pytest

from medcore_users.services.row_normalizer import is_blank_row, normalize_row


@pytest.mark.parametrize(
    ("raw_role", "expected"),
    [
        ("doctor", "MEDICO"),
        ("Médico", "MEDICO"),
        (" nurse ", "ENFERMERA"),
        ("Paciente", "PACIENTE"),
        ("admin", "ADMINISTRADOR"),
        ("janitor", "JANITOR"),
    ],
)
def test_role_aliases(raw_role: str, expected: str) -> None:
    assert normalize_row({"role": raw_role})["role"] == expected


@pytest.mark.parametrize(
    ("raw_status", "expected"),
    [("activo", "ACTIVE"), ("Inactivo", "INACTIVE"), ("pendiente", "PENDING"), ("active", "ACTIVE")],
)
def test_status_aliases(raw_status: str, expected: str) -> None:
    assert normalize_row({"status": raw_status})["status"] == expected


def test_column_aliases_and_trimming() -> None:
    row = normalize_row(
        {
            " password ": "secret1",
            "birthDate": " 1990-01-15 ",
            "telefono": "555-1234",
            "fullName": "  Ana Gomez ",
            "age": 34,
            "unknown column": "kept",
        }
    )

    assert row == {
        "current_password": "secret1",
        "date_of_birth": "1990-01-15",
        "phone": "555-1234",
        "fullname": "Ana Gomez",
        "age": 34,
        "unknown column": "kept",
    }


def test_doctor_columns_are_grouped_under_medico() -> None:
    row = normalize_row({"role": "doctor", "especialidad": "Cardiología", "licencia_medica": "LIC-9"})

    assert row == {"role": "MEDICO", "medico": {"specialty": "Cardiología", "license_number": "LIC-9"}}


def test_nested_values_win_over_flat_columns() -> None:
    row = normalize_row(
        {
            "role": "ENFERMERA",
            "departamento": "Urgencias",
            "enfermera": {"departmentId": "dep-1", "departamento": "Pediatría"},
        }
    )

    assert row["enfermera"] == {"departmentId": "dep-1", "department": "Pediatría"}
    assert "department" not in row


def test_administrator_fields_without_role_stay_flat() -> None:
    row = normalize_row({"nivelAcceso": "total"})

    assert row == {"nivelAcceso": "total"}


def test_blank_row_detection() -> None:
    assert is_blank_row({"email": "", "fullname": "   ", "phone": None})
    assert not is_blank_row({"email": "", "age": 0})
    assert not is_blank_row({"email": " a@x.com "})
