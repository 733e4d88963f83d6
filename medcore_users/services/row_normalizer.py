"""Map loosely-labelled upload rows onto the canonical user vocabulary.

Uploads come from spreadsheets maintained by hand, so the same column shows
up as ``password``, ``currentPassword`` or ``current_password`` and roles as
``doctor``, ``Médico`` or ``MEDICO``. Normalization is best effort and never
fails; anything it does not recognise is passed through for the validator to
reject.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

COLUMN_ALIASES: dict[str, str] = {
    "currentPassword": "current_password",
    "password": "current_password",
    "dateOfBirth": "date_of_birth",
    "birthDate": "date_of_birth",
    "fecha_nacimiento": "date_of_birth",
    "telefono": "phone",
    "licencia": "license_number",
    "licencia_medica": "license_number",
    "especialidad": "specialty",
    "departamento": "department",
    "fullName": "fullname",
    "full_name": "fullname",
    "document_number": "documentNumber",
    "genero": "gender",
}

ROLE_ALIASES: dict[str, str] = {
    "DOCTOR": "MEDICO",
    "MÉDICO": "MEDICO",
    "MEDICO": "MEDICO",
    "NURSE": "ENFERMERA",
    "ENFERMERA": "ENFERMERA",
    "PATIENT": "PACIENTE",
    "PACIENTE": "PACIENTE",
    "ADMIN": "ADMINISTRADOR",
    "ADMINISTRADOR": "ADMINISTRADOR",
}

STATUS_ALIASES: dict[str, str] = {
    "ACTIVO": "ACTIVE",
    "INACTIVO": "INACTIVE",
    "PENDIENTE": "PENDING",
    "ACTIVE": "ACTIVE",
    "INACTIVE": "INACTIVE",
    "PENDING": "PENDING",
}

# Flat columns that belong to each role's nested group.
ROLE_GROUPS: dict[str, tuple[str, tuple[str, ...]]] = {
    "MEDICO": ("medico", ("specialty", "specialtyId", "license_number")),
    "ENFERMERA": ("enfermera", ("department", "departmentId")),
    "PACIENTE": ("paciente", ("address",)),
    "ADMINISTRADOR": ("administrador", ("nivelAcceso", "departamentoAsignado")),
}


def normalize_row(raw_row: Mapping[str, Any]) -> dict[str, Any]:
    row: dict[str, Any] = {}
    for key, value in raw_row.items():
        row[_canonical_column(key)] = _clean(value)

    if isinstance(row.get("role"), str) and row["role"]:
        role = row["role"].upper()
        row["role"] = ROLE_ALIASES.get(role, role)
    if isinstance(row.get("status"), str) and row["status"]:
        status = row["status"].upper()
        row["status"] = STATUS_ALIASES.get(status, status)

    _group_role_fields(row)
    return row


def is_blank_row(row: Mapping[str, Any]) -> bool:
    return all(_is_blank(value) for value in row.values())


def _canonical_column(key: Any) -> str:
    column = str(key).strip()
    return COLUMN_ALIASES.get(column, column)


def _clean(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, Mapping):
        return {_canonical_column(key): _clean(item) for key, item in value.items()}
    return value


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def _group_role_fields(row: dict[str, Any]) -> None:
    role = row.get("role")
    group = ROLE_GROUPS.get(role) if isinstance(role, str) else None
    if group is None:
        return
    group_name, columns = group
    nested = row.get(group_name)
    nested = dict(nested) if isinstance(nested, Mapping) else {}
    for column in columns:
        if column in row:
            value = row.pop(column)
            # Values already nested in the source win over flat columns.
            nested.setdefault(column, value)
    if nested:
        row[group_name] = nested
