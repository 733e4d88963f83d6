from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
import math
from typing import Any

from medcore_users.config import Settings
from medcore_users.exceptions import UserAlreadyExistsError, UserNotFoundError
from medcore_users.models import (
    AdministratorProfile,
    DoctorProfile,
    NurseProfile,
    PatientProfile,
    Role,
    RoleProfile,
    UserAccount,
    UserFilter,
    UserStatus,
)
from medcore_users.schemas import UserCreate, UserListParams, UserUpdate
from medcore_users.services.account_provisioner import AccountProvisioner
from medcore_users.services.catalog import resolve_department_id, resolve_specialty_id
from medcore_users.services.row_validator import ValidatedRecord, calculate_age, ensure_age_in_range
from medcore_users.state import UserStore

logger = logging.getLogger(__name__)

_BASE_FIELDS = ("email", "fullname", "document_number", "phone", "gender", "date_of_birth")
_REQUIRED_FIELDS = ("email", "fullname", "date_of_birth")


@dataclass(slots=True)
class UserPage:
    users: list[UserAccount]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


@dataclass(slots=True)
class UserStats:
    total: int
    active: int
    pending: int
    inactive: int
    by_role: dict[Role, int]


class UsersService:
    """Single-account operations behind the /users endpoints."""

    def __init__(self, *, store: UserStore, provisioner: AccountProvisioner, settings: Settings) -> None:
        self._store = store
        self._provisioner = provisioner
        self._settings = settings

    async def create_user(self, payload: UserCreate) -> UserAccount:
        email = str(payload.email)
        if await self._store.find_by_email(email) is not None:
            raise UserAlreadyExistsError(email.lower())
        age = ensure_age_in_range(calculate_age(payload.date_of_birth))
        record = ValidatedRecord(user=payload, age=age)
        return await self._provisioner.provision(record, self._settings.single_create_code_ttl)

    async def get_user(self, user_id: str, *, role: Role | None = None) -> UserAccount:
        account = await self._store.get(user_id)
        if account is None or (role is not None and account.role is not role):
            raise UserNotFoundError(user_id)
        return account

    async def list_users(self, params: UserListParams) -> UserPage:
        user_filter = UserFilter(
            role=params.role,
            status=params.status,
            specialty_id=params.specialty_id,
            query=params.q,
        )
        offset = (params.page - 1) * params.limit
        users, total = await asyncio.gather(
            self._store.list_users(user_filter, offset=offset, limit=params.limit),
            self._store.count(user_filter),
        )
        return UserPage(users=users, total=total, page=params.page, limit=params.limit)

    async def update_user(self, user_id: str, update: UserUpdate, *, role: Role | None = None) -> UserAccount:
        account = await self.get_user(user_id, role=role)
        provided = update.model_dump(exclude_unset=True)

        changes: dict[str, Any] = {name: provided[name] for name in _BASE_FIELDS if name in provided}
        # Required account fields cannot be cleared.
        for name in _REQUIRED_FIELDS:
            if changes.get(name) is None:
                changes.pop(name, None)
        if "email" in changes:
            changes["email"] = str(changes["email"]).lower()
        if "date_of_birth" in changes:
            changes["age"] = ensure_age_in_range(calculate_age(changes["date_of_birth"]))

        profile = await self._updated_profile(account, update)
        if profile is not None:
            changes["profile"] = profile

        updated = await self._store.update(user_id, changes)
        logger.info("Updated user %s (%s)", user_id, ", ".join(sorted(changes)) or "no changes")
        return updated

    async def deactivate_user(self, user_id: str) -> UserAccount:
        await self.get_user(user_id)
        return await self._store.update(user_id, {"status": UserStatus.INACTIVE})

    async def toggle_status(self, user_id: str, *, role: Role | None = None) -> UserAccount:
        account = await self.get_user(user_id, role=role)
        new_status = UserStatus.INACTIVE if account.status is UserStatus.ACTIVE else UserStatus.ACTIVE
        return await self._store.update(user_id, {"status": new_status})

    async def get_stats(self) -> UserStats:
        roles = list(Role)
        total, active, pending, inactive, *per_role = await asyncio.gather(
            self._store.count(),
            self._store.count(UserFilter(status=UserStatus.ACTIVE)),
            self._store.count(UserFilter(status=UserStatus.PENDING)),
            self._store.count(UserFilter(status=UserStatus.INACTIVE)),
            *(self._store.count(UserFilter(role=role)) for role in roles),
        )
        return UserStats(
            total=total,
            active=active,
            pending=pending,
            inactive=inactive,
            by_role={role: count for role, count in zip(roles, per_role) if count},
        )

    async def _updated_profile(self, account: UserAccount, update: UserUpdate) -> RoleProfile | None:
        if account.role is Role.MEDICO and update.medico is not None:
            data = update.medico
            current = account.profile
            specialty_id = current.specialty_id
            if data.specialty_id or data.specialty:
                specialty_id = await resolve_specialty_id(self._store, data.specialty_id, data.specialty)
            return DoctorProfile(
                specialty_id=specialty_id,
                license_number=data.license_number or current.license_number,
            )

        if account.role is Role.ENFERMERA and update.enfermera is not None:
            data = update.enfermera
            department_id = await resolve_department_id(self._store, data.department_id, data.department)
            return NurseProfile(department_id=department_id)

        if account.role is Role.PACIENTE and update.paciente is not None:
            return PatientProfile(address=update.paciente.address)

        if account.role is Role.ADMINISTRADOR and update.administrador is not None:
            return AdministratorProfile(
                access_level=update.administrador.access_level,
                assigned_department=update.administrador.assigned_department,
            )
        return None
