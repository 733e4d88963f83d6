from __future__ import annotations

from datetime import date, datetime
import re
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field, TypeAdapter, field_validator, model_validator

from medcore_users.models import Role, UserStatus

NAME_PATTERN = re.compile(r"^[a-zA-ZáéíóúÁÉÍÓÚüÜñÑ\s]+$")
DATE_FORMATS: tuple[str, ...] = ("%Y-%m-%d", "%d/%m/%Y", "%Y/%m/%d", "%d-%m-%Y")

StatusLiteral = Literal["PENDING", "ACTIVE", "INACTIVE"]


def parse_date(value: Any) -> Any:
    """Accept ISO dates, day-first dates and spreadsheet datetimes."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, str):
        text = value.strip()
        if "T" in text:
            text = text.split("T", 1)[0]
        for fmt in DATE_FORMATS:
            try:
                return datetime.strptime(text, fmt).date()
            except ValueError:
                continue
    return value


class _Schema(BaseModel):
    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True, extra="ignore")


# Role-specific nested groups


class DoctorData(_Schema):
    specialty: str | None = None
    specialty_id: str | None = Field(default=None, alias="specialtyId")
    license_number: str = Field(min_length=1)

    @model_validator(mode="after")
    def _require_specialty(self) -> DoctorData:
        if not (self.specialty or self.specialty_id):
            raise ValueError("Must provide specialty (name) or specialtyId")
        return self


class DoctorUpdateData(_Schema):
    """Doctor fields on update; omitted values keep what is stored."""

    specialty: str | None = None
    specialty_id: str | None = Field(default=None, alias="specialtyId")
    license_number: str | None = Field(default=None, min_length=1)

    @model_validator(mode="after")
    def _require_change(self) -> DoctorUpdateData:
        if not (self.specialty or self.specialty_id or self.license_number):
            raise ValueError("Must provide specialty, specialtyId or license_number")
        return self


class NurseData(_Schema):
    department: str | None = None
    department_id: str | None = Field(default=None, alias="departmentId")

    @model_validator(mode="after")
    def _require_department(self) -> NurseData:
        if not (self.department or self.department_id):
            raise ValueError("Must provide department (name) or departmentId")
        return self


class PatientData(_Schema):
    address: str | None = None


class AdministratorData(_Schema):
    access_level: str | None = Field(default=None, alias="nivelAcceso")
    assigned_department: str | None = Field(default=None, alias="departamentoAsignado")


# Creation payloads


class UserBase(_Schema):
    email: EmailStr
    current_password: str
    fullname: str = Field(min_length=1)
    document_number: str | None = Field(default=None, alias="documentNumber")
    phone: str | None = None
    gender: str | None = None
    date_of_birth: date
    status: StatusLiteral = "PENDING"

    @field_validator("current_password")
    @classmethod
    def _password_policy(cls, value: str) -> str:
        problems = []
        if len(value) < 6:
            problems.append("must be at least 6 characters long")
        if not any(char.isdigit() for char in value):
            problems.append("must contain at least one number")
        if problems:
            raise ValueError(" and ".join(problems))
        return value

    @field_validator("fullname")
    @classmethod
    def _name_characters(cls, value: str) -> str:
        if not NAME_PATTERN.match(value):
            raise ValueError("may only contain letters and spaces")
        return value

    @field_validator("date_of_birth", mode="before")
    @classmethod
    def _coerce_date(cls, value: Any) -> Any:
        return parse_date(value)


class DoctorCreate(UserBase):
    role: Literal["MEDICO"]
    medico: DoctorData


class NurseCreate(UserBase):
    role: Literal["ENFERMERA"]
    enfermera: NurseData


class PatientCreate(UserBase):
    role: Literal["PACIENTE"]
    gender: str = Field(min_length=1)
    paciente: PatientData | None = None


class AdministratorCreate(UserBase):
    role: Literal["ADMINISTRADOR"]
    administrador: AdministratorData | None = None


UserCreate = Annotated[
    Union[DoctorCreate, NurseCreate, PatientCreate, AdministratorCreate],
    Field(discriminator="role"),
]
user_create_adapter: TypeAdapter[UserCreate] = TypeAdapter(UserCreate)


class UserUpdate(_Schema):
    """Partial update; status and password have their own flows."""

    email: EmailStr | None = None
    fullname: str | None = Field(default=None, min_length=1)
    document_number: str | None = Field(default=None, alias="documentNumber")
    phone: str | None = None
    gender: str | None = None
    date_of_birth: date | None = None
    medico: DoctorUpdateData | None = None
    enfermera: NurseData | None = None
    paciente: PatientData | None = None
    administrador: AdministratorData | None = None

    @field_validator("fullname")
    @classmethod
    def _name_characters(cls, value: str | None) -> str | None:
        if value is not None and not NAME_PATTERN.match(value):
            raise ValueError("may only contain letters and spaces")
        return value

    @field_validator("date_of_birth", mode="before")
    @classmethod
    def _coerce_date(cls, value: Any) -> Any:
        return parse_date(value)


class UserListParams(BaseModel):
    role: Role | None = None
    status: UserStatus | None = None
    specialty_id: str | None = Field(default=None, alias="specialtyId")
    q: str | None = None
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=100)

    model_config = ConfigDict(populate_by_name=True)


# Responses


class UserResponse(BaseModel):
    id: str
    email: str
    fullname: str
    role: Role
    status: UserStatus
    age: int
    date_of_birth: date
    document_number: str | None = None
    phone: str | None = None
    gender: str | None = None
    profile: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime


class Pagination(BaseModel):
    total: int
    page: int
    limit: int
    totalPages: int


class UserListResponse(BaseModel):
    users: list[UserResponse]
    pagination: Pagination


class UserCreatedResponse(UserResponse):
    message: str


class UserMessageResponse(BaseModel):
    message: str
    user: UserResponse | None = None


class RoleCount(BaseModel):
    role: Role
    count: int


class StatusCounts(BaseModel):
    active: int
    pending: int
    inactive: int


class UserStatsResponse(BaseModel):
    total: int
    byStatus: StatusCounts
    byRole: list[RoleCount]


class ImportSummary(BaseModel):
    total: int
    successful: int
    failed: int
    skipped: int = 0


class SuccessfulRow(BaseModel):
    index: int
    patient: UserResponse = Field(description="Account created for the row")


class FailedRow(BaseModel):
    index: int
    row: dict[str, Any]
    error: str


class ImportResults(BaseModel):
    successful: list[SuccessfulRow]
    failed: list[FailedRow]
    skipped: list[int] = Field(default_factory=list, description="Indexes of entirely blank rows")
    forwarded: list[int] = Field(default_factory=list, description="Indexes sent to the patients service")
    total: int


class BulkImportResponse(BaseModel):
    message: str
    summary: ImportSummary
    results: ImportResults

    model_config = {
        "json_schema_extra": {
            "example": {
                "message": "Import completed",
                "summary": {"total": 3, "successful": 2, "failed": 1, "skipped": 0},
                "results": {
                    "successful": [
                        {
                            "index": 0,
                            "patient": {
                                "id": "0b7c3c4e-5d0a-4f59-9d55-0f0c2f1f7a11",
                                "email": "ana.gomez@clinic.com",
                                "fullname": "Ana Gomez",
                                "role": "MEDICO",
                                "status": "PENDING",
                                "age": 38,
                                "date_of_birth": "1986-02-11",
                                "profile": {"specialty_id": "c1", "license_number": "LIC-001"},
                                "created_at": "2024-01-01T10:00:00Z",
                                "updated_at": "2024-01-01T10:00:00Z",
                            },
                        }
                    ],
                    "failed": [{"index": 2, "row": {"email": "bad"}, "error": "email: value is not a valid email address"}],
                    "skipped": [],
                    "forwarded": [1],
                    "total": 3,
                },
            }
        }
    }


class GenericErrorResponse(BaseModel):
    detail: str


class UploadSizeErrorResponse(BaseModel):
    detail: str
    limit: int
    actual: int
