from __future__ import annotations

import re
import unicodedata

from medcore_users.exceptions import DepartmentNotFoundError, SpecialtyNotFoundError
from medcore_users.state import CatalogEntry, UserStore


def normalize_name(value: str) -> str:
    """Fold accents, case and whitespace so "  Cardiología " matches "cardiologia"."""
    decomposed = unicodedata.normalize("NFD", value)
    stripped = "".join(char for char in decomposed if not unicodedata.combining(char))
    return re.sub(r"\s+", " ", stripped.lower().strip())


def match_by_name(entries: list[CatalogEntry], name: str) -> CatalogEntry | None:
    wanted = normalize_name(name)
    return next((entry for entry in entries if normalize_name(entry.name) == wanted), None)


async def find_specialty_by_name(store: UserStore, name: str) -> str | None:
    entry = match_by_name(await store.list_specialties(), name)
    return entry.id if entry is not None else None


async def find_department_by_name(store: UserStore, name: str) -> str | None:
    entry = match_by_name(await store.list_departments(), name)
    return entry.id if entry is not None else None


async def resolve_specialty_id(store: UserStore, specialty_id: str | None, name: str | None) -> str:
    """Use a supplied id as is; otherwise look the specialty up by name."""
    if specialty_id:
        return specialty_id
    found = await find_specialty_by_name(store, name or "")
    if found is None:
        raise SpecialtyNotFoundError(name or "")
    return found


async def resolve_department_id(store: UserStore, department_id: str | None, name: str | None) -> str:
    if department_id:
        return department_id
    found = await find_department_by_name(store, name or "")
    if found is None:
        raise DepartmentNotFoundError(name or "")
    return found
