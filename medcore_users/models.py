from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import UTC, date, datetime
from enum import Enum
from typing import Any
import uuid


class Role(str, Enum):
    MEDICO = "MEDICO"
    ENFERMERA = "ENFERMERA"
    PACIENTE = "PACIENTE"
    ADMINISTRADOR = "ADMINISTRADOR"


class UserStatus(str, Enum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


@dataclass(slots=True)
class DoctorProfile:
    specialty_id: str
    license_number: str


@dataclass(slots=True)
class NurseProfile:
    department_id: str


@dataclass(slots=True)
class PatientProfile:
    address: str | None = None


@dataclass(slots=True)
class AdministratorProfile:
    access_level: str | None = None
    assigned_department: str | None = None


RoleProfile = DoctorProfile | NurseProfile | PatientProfile | AdministratorProfile

PROFILE_TYPES: dict[Role, type] = {
    Role.MEDICO: DoctorProfile,
    Role.ENFERMERA: NurseProfile,
    Role.PACIENTE: PatientProfile,
    Role.ADMINISTRADOR: AdministratorProfile,
}


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _new_id() -> str:
    return str(uuid.uuid4())


@dataclass(slots=True)
class UserAccount:
    email: str
    fullname: str
    password_hash: str
    role: Role
    date_of_birth: date
    age: int
    profile: RoleProfile
    status: UserStatus = UserStatus.PENDING
    document_number: str | None = None
    phone: str | None = None
    gender: str | None = None
    verification_code: str | None = None
    verification_code_expires: datetime | None = None
    id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        expected = PROFILE_TYPES[self.role]
        if not isinstance(self.profile, expected):
            raise TypeError(f"{self.role.value} accounts require a {expected.__name__}")

    def public_view(self) -> dict[str, Any]:
        """Return the account as plain data without credential or verification fields."""
        return {
            "id": self.id,
            "email": self.email,
            "fullname": self.fullname,
            "role": self.role.value,
            "status": self.status.value,
            "age": self.age,
            "date_of_birth": self.date_of_birth,
            "document_number": self.document_number,
            "phone": self.phone,
            "gender": self.gender,
            "profile": asdict(self.profile),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass(slots=True, frozen=True)
class UserFilter:
    """Optional criteria for listing and counting accounts.

    Every field left as ``None`` matches everything, so ``UserFilter()``
    selects the whole store.
    """

    role: Role | None = None
    status: UserStatus | None = None
    specialty_id: str | None = None
    query: str | None = None

    def matches(self, account: UserAccount) -> bool:
        if self.role is not None and account.role != self.role:
            return False
        if self.status is not None and account.status != self.status:
            return False
        if self.specialty_id is not None:
            if not isinstance(account.profile, DoctorProfile):
                return False
            if account.profile.specialty_id != self.specialty_id:
                return False
        term = (self.query or "").strip().lower()
        if term:
            return any(term in value.lower() for value in _searchable_values(account))
        return True


def _searchable_values(account: UserAccount) -> list[str]:
    values = [account.fullname, account.email]
    if isinstance(account.profile, DoctorProfile):
        values.append(account.profile.license_number)
    elif isinstance(account.profile, NurseProfile):
        values.append(account.profile.department_id)
    return [value for value in values if value]


class ProvisionState(str, Enum):
    CREATED_PENDING_EMAIL = "created_pending_email"
    VERIFIABLE = "verifiable"
    ROLLED_BACK = "rolled_back"


_ALLOWED_TRANSITIONS: dict[ProvisionState, frozenset[ProvisionState]] = {
    ProvisionState.CREATED_PENDING_EMAIL: frozenset({ProvisionState.VERIFIABLE, ProvisionState.ROLLED_BACK}),
    ProvisionState.VERIFIABLE: frozenset(),
    ProvisionState.ROLLED_BACK: frozenset(),
}


@dataclass(slots=True)
class ProvisionTicket:
    """Tracks a tentatively persisted account until its verification email is out.

    An account is final only once the ticket reaches ``VERIFIABLE``; a ticket
    that reaches ``ROLLED_BACK`` means the account was removed again.
    """

    account: UserAccount
    state: ProvisionState = ProvisionState.CREATED_PENDING_EMAIL
    error: str | None = None

    def advance(self, new_state: ProvisionState, *, error: str | None = None) -> None:
        if new_state not in _ALLOWED_TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal provisioning transition: {self.state.value} -> {new_state.value}")
        self.state = new_state
        self.error = error
