from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date
from typing import Any

from pydantic import ValidationError

from medcore_users.exceptions import InvalidAgeError, RowValidationError
from medcore_users.models import Role
from medcore_users.schemas import UserCreate, user_create_adapter

MIN_AGE = 1
MAX_AGE = 120

_ROLE_TAGS = frozenset(role.value for role in Role)


@dataclass(slots=True)
class ValidatedRecord:
    user: UserCreate
    age: int

    @property
    def role(self) -> Role:
        return Role(self.user.role)

    @property
    def email(self) -> str:
        return str(self.user.email)


def calculate_age(date_of_birth: date, today: date | None = None) -> int:
    """Whole years elapsed, not counting a birthday still ahead this year."""
    today = today or date.today()
    age = today.year - date_of_birth.year
    if (today.month, today.day) < (date_of_birth.month, date_of_birth.day):
        age -= 1
    return age


def ensure_age_in_range(age: int) -> int:
    if not MIN_AGE <= age <= MAX_AGE:
        raise InvalidAgeError(age)
    return age


def validate_row(row: Mapping[str, Any], *, today: date | None = None) -> ValidatedRecord:
    """Validate a normalized row against the schema for its role.

    Raises ``RowValidationError`` listing every field problem at once, or
    ``InvalidAgeError`` when the derived age falls outside [1, 120].
    """
    try:
        user = user_create_adapter.validate_python(_drop_empty(row))
    except ValidationError as exc:
        raise RowValidationError(format_validation_errors(exc)) from exc

    age = ensure_age_in_range(calculate_age(user.date_of_birth, today))
    return ValidatedRecord(user=user, age=age)


def format_validation_errors(exc: ValidationError) -> list[str]:
    messages: list[str] = []
    for error in exc.errors():
        location = [str(part) for part in error["loc"]]
        # Discriminated unions prefix the location with the matched tag.
        if location and location[0] in _ROLE_TAGS:
            location = location[1:]
        message = error["msg"]
        context = error.get("ctx") or {}
        if error["type"] == "value_error" and "error" in context:
            message = str(context["error"])
        messages.append(f"{'.'.join(location)}: {message}" if location else message)
    return messages


def _drop_empty(value: Any) -> Any:
    """Treat blank cells as absent so required fields report as missing."""
    if isinstance(value, Mapping):
        return {
            key: _drop_empty(item)
            for key, item in value.items()
            if item is not None and not (isinstance(item, str) and not item.strip())
        }
    return value
