from __future__ import annotations

import asyncio
import copy
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
import uuid

from medcore_users.exceptions import ConflictError, UserNotFoundError
from medcore_users.models import UserAccount, UserFilter


@dataclass(slots=True)
class CatalogEntry:
    """A specialty or department that accounts can reference by id."""

    name: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))


def _utcnow() -> datetime:
    return datetime.now(UTC)


class UserStore:
    """In-memory account store with unique email and document number constraints.

    Every operation is atomic with respect to the others; values handed out are
    copies so callers cannot mutate stored state.
    """

    def __init__(self) -> None:
        self._users: dict[str, UserAccount] = {}
        self._specialties: dict[str, CatalogEntry] = {}
        self._departments: dict[str, CatalogEntry] = {}
        self._lock = asyncio.Lock()

    async def create(self, account: UserAccount) -> UserAccount:
        async with self._lock:
            stored = copy.deepcopy(account)
            stored.email = stored.email.lower()
            self._ensure_unique(stored)
            self._users[stored.id] = stored
            return copy.deepcopy(stored)

    async def get(self, user_id: str) -> UserAccount | None:
        async with self._lock:
            account = self._users.get(user_id)
            return copy.deepcopy(account) if account is not None else None

    async def find_by_email(self, email: str) -> UserAccount | None:
        needle = email.strip().lower()
        async with self._lock:
            for account in self._users.values():
                if account.email == needle:
                    return copy.deepcopy(account)
            return None

    async def find_by_document_number(self, document_number: str) -> UserAccount | None:
        async with self._lock:
            for account in self._users.values():
                if account.document_number and account.document_number == document_number:
                    return copy.deepcopy(account)
            return None

    async def update(self, user_id: str, changes: dict[str, Any]) -> UserAccount:
        async with self._lock:
            current = self._get_existing(user_id)
            updated = copy.deepcopy(current)
            for name, value in changes.items():
                setattr(updated, name, value)
            updated.email = updated.email.lower()
            self._ensure_unique(updated, ignore_id=user_id)
            updated.updated_at = _utcnow()
            self._users[user_id] = updated
            return copy.deepcopy(updated)

    async def delete(self, user_id: str) -> None:
        async with self._lock:
            self._get_existing(user_id)
            del self._users[user_id]

    async def list_users(
        self,
        user_filter: UserFilter,
        *,
        offset: int = 0,
        limit: int | None = None,
    ) -> list[UserAccount]:
        async with self._lock:
            matching = [account for account in self._users.values() if user_filter.matches(account)]
            matching.sort(key=lambda account: account.created_at, reverse=True)
            end = None if limit is None else offset + limit
            return copy.deepcopy(matching[offset:end])

    async def count(self, user_filter: UserFilter | None = None) -> int:
        criteria = user_filter or UserFilter()
        async with self._lock:
            return sum(1 for account in self._users.values() if criteria.matches(account))

    async def add_specialty(self, name: str) -> CatalogEntry:
        async with self._lock:
            entry = CatalogEntry(name=name)
            self._specialties[entry.id] = entry
            return copy.copy(entry)

    async def add_department(self, name: str) -> CatalogEntry:
        async with self._lock:
            entry = CatalogEntry(name=name)
            self._departments[entry.id] = entry
            return copy.copy(entry)

    async def list_specialties(self) -> list[CatalogEntry]:
        async with self._lock:
            return [copy.copy(entry) for entry in self._specialties.values()]

    async def list_departments(self) -> list[CatalogEntry]:
        async with self._lock:
            return [copy.copy(entry) for entry in self._departments.values()]

    def _ensure_unique(self, candidate: UserAccount, *, ignore_id: str | None = None) -> None:
        for existing in self._users.values():
            if existing.id in (candidate.id, ignore_id):
                continue
            if existing.email == candidate.email:
                raise ConflictError("email", candidate.email)
            if candidate.document_number and existing.document_number == candidate.document_number:
                raise ConflictError("document_number", candidate.document_number)

    def _get_existing(self, user_id: str) -> UserAccount:
        account = self._users.get(user_id)
        if account is None:
            raise UserNotFoundError(user_id)
        return account


_global_store = UserStore()


def get_user_store() -> UserStore:
    return _global_store
