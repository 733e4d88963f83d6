from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
import logging

import bcrypt

from medcore_users.config import Settings
from medcore_users.exceptions import ConflictError, VerificationEmailError
from medcore_users.models import (
    AdministratorProfile,
    DoctorProfile,
    NurseProfile,
    PatientProfile,
    ProvisionState,
    ProvisionTicket,
    RoleProfile,
    UserAccount,
)
from medcore_users.schemas import AdministratorCreate, DoctorCreate, NurseCreate, PatientCreate
from medcore_users.services.catalog import resolve_department_id, resolve_specialty_id
from medcore_users.services.mailer import MailResult, VerificationSender, generate_verification_code
from medcore_users.services.row_validator import ValidatedRecord
from medcore_users.state import UserStore

logger = logging.getLogger(__name__)


BCRYPT_MAX_BYTES = 72


def hash_password(password: str, rounds: int) -> str:
    # bcrypt only reads the first 72 bytes of a secret; newer releases refuse longer input.
    secret = password.encode("utf-8")[:BCRYPT_MAX_BYTES]
    return bcrypt.hashpw(secret, bcrypt.gensalt(rounds=rounds)).decode("utf-8")


class AccountProvisioner:
    """Create a PENDING account and deliver its verification code.

    The account is persisted before the email goes out and deleted again if
    delivery fails, so a stored account always had a code sent to it.
    """

    def __init__(
        self,
        *,
        store: UserStore,
        mailer: VerificationSender,
        settings: Settings,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._mailer = mailer
        self._settings = settings
        self._clock = clock or (lambda: datetime.now(UTC))

    async def provision(self, record: ValidatedRecord, code_ttl: timedelta) -> UserAccount:
        user = record.user
        await self._ensure_available(record)
        profile = await self._resolve_profile(user)

        password_hash = await asyncio.to_thread(
            hash_password, user.current_password, self._settings.bcrypt_rounds
        )
        code = generate_verification_code()
        account = UserAccount(
            email=record.email.lower(),
            fullname=user.fullname,
            password_hash=password_hash,
            role=record.role,
            date_of_birth=user.date_of_birth,
            age=record.age,
            profile=profile,
            document_number=user.document_number,
            phone=user.phone,
            gender=user.gender,
            verification_code=code,
            verification_code_expires=self._clock() + code_ttl,
        )

        ticket = ProvisionTicket(account=await self._store.create(account))
        try:
            result = await self._send_code(ticket.account, code)
        except Exception as exc:
            await self._roll_back(ticket, str(exc) or exc.__class__.__name__)
            raise
        if not result.success:
            await self._roll_back(ticket, result.error)
            raise VerificationEmailError(result.error)

        ticket.advance(ProvisionState.VERIFIABLE)
        logger.info("Provisioned %s account %s", ticket.account.role.value, ticket.account.id)
        return ticket.account

    async def _roll_back(self, ticket: ProvisionTicket, error: str | None) -> None:
        await self._store.delete(ticket.account.id)
        ticket.advance(ProvisionState.ROLLED_BACK, error=error)
        logger.warning("Rolled back account %s after failed verification email", ticket.account.id)

    async def _ensure_available(self, record: ValidatedRecord) -> None:
        if await self._store.find_by_email(record.email) is not None:
            raise ConflictError("email", record.email.lower())
        document_number = record.user.document_number
        if document_number and await self._store.find_by_document_number(document_number) is not None:
            raise ConflictError("document_number", document_number)

    async def _resolve_profile(
        self, user: DoctorCreate | NurseCreate | PatientCreate | AdministratorCreate
    ) -> RoleProfile:
        if isinstance(user, DoctorCreate):
            specialty_id = await resolve_specialty_id(self._store, user.medico.specialty_id, user.medico.specialty)
            return DoctorProfile(specialty_id=specialty_id, license_number=user.medico.license_number)

        if isinstance(user, NurseCreate):
            department_id = await resolve_department_id(
                self._store, user.enfermera.department_id, user.enfermera.department
            )
            return NurseProfile(department_id=department_id)

        if isinstance(user, PatientCreate):
            return PatientProfile(address=user.paciente.address if user.paciente else None)

        data = user.administrador
        return AdministratorProfile(
            access_level=data.access_level if data else None,
            assigned_department=data.assigned_department if data else None,
        )

    async def _send_code(self, account: UserAccount, code: str) -> MailResult:
        timeout = self._settings.email_send_timeout_seconds
        try:
            return await asyncio.wait_for(
                self._mailer.send_verification(account.email, account.fullname, code),
                timeout=timeout,
            )
        except TimeoutError:
            return MailResult(success=False, error=f"timed out after {timeout:g}s")
