from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import timedelta
import logging
import time
from typing import Any

from medcore_users.config import BULK_CREATE_CODE_TTL
from medcore_users.exceptions import DuplicateInBatchError, RowError
from medcore_users.models import Role, UserAccount
from medcore_users.services.account_provisioner import AccountProvisioner
from medcore_users.services.patient_forwarder import PatientForwarder
from medcore_users.services.row_normalizer import is_blank_row, normalize_row
from medcore_users.services.row_validator import ValidatedRecord, validate_row
from medcore_users.services.tabular_decoder import decode

logger = logging.getLogger(__name__)

IMPORT_COMPLETED = "Import completed"
CREDENTIAL_COLUMNS = frozenset({"current_password", "currentPassword", "password"})
REDACTED = "***"


@dataclass(slots=True)
class RowSuccess:
    index: int
    account: UserAccount


@dataclass(slots=True)
class RowFailure:
    index: int
    row: dict[str, Any]
    error: str


@dataclass(slots=True)
class BatchResult:
    total: int
    successful: list[RowSuccess] = field(default_factory=list)
    failed: list[RowFailure] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)
    forwarded: list[int] = field(default_factory=list)
    forwarded_accepted: int = 0
    forwarded_rejected: int = 0
    processing_time_seconds: float = 0.0
    message: str = IMPORT_COMPLETED

    @property
    def successful_count(self) -> int:
        return len(self.successful) + self.forwarded_accepted

    @property
    def failed_count(self) -> int:
        return len(self.failed) + self.forwarded_rejected


class DuplicateGuard:
    """Emails seen so far in one batch, compared case-insensitively."""

    def __init__(self) -> None:
        self._seen: set[str] = set()

    @staticmethod
    def _key(email: str) -> str:
        return email.strip().lower()

    def seen(self, email: str) -> bool:
        return self._key(email) in self._seen

    def mark(self, email: str) -> None:
        self._seen.add(self._key(email))

    def check(self, email: Any) -> None:
        if not isinstance(email, str) or not email.strip():
            return
        if self.seen(email):
            raise DuplicateInBatchError(self._key(email))
        self.mark(email)


class BatchAggregator:
    """Collects per-row outcomes in input order."""

    def __init__(self, total: int) -> None:
        self._result = BatchResult(total=total)

    def succeed(self, index: int, account: UserAccount) -> None:
        self._result.successful.append(RowSuccess(index=index, account=account))

    def fail(self, index: int, row: Mapping[str, Any], error: str) -> None:
        self._result.failed.append(RowFailure(index=index, row=redact_row(row), error=error))

    def skip(self, index: int) -> None:
        self._result.skipped.append(index)

    def forwarded(self, indexes: list[int], *, accepted: int, rejected: int) -> None:
        self._result.forwarded.extend(indexes)
        self._result.forwarded_accepted += accepted
        self._result.forwarded_rejected += rejected

    def finish(self, elapsed: float) -> BatchResult:
        result = self._result
        result.failed.sort(key=lambda failure: failure.index)
        result.processing_time_seconds = round(elapsed, 3)
        return result


def redact_row(row: Mapping[str, Any]) -> dict[str, Any]:
    return {
        key: REDACTED if str(key).strip() in CREDENTIAL_COLUMNS and value not in (None, "") else value
        for key, value in row.items()
    }


@dataclass(slots=True)
class _HeldPatient:
    index: int
    record: ValidatedRecord
    row: Mapping[str, Any]


class BulkImportService:
    """Turn an uploaded file into accounts, one row at a time.

    Only a file that cannot be decoded at all raises; every row-level problem
    is recorded in the returned ``BatchResult`` and the batch carries on.
    Patient rows are held back and forwarded in one request at the end.
    """

    def __init__(
        self,
        *,
        provisioner: AccountProvisioner,
        forwarder: PatientForwarder,
        code_ttl: timedelta = BULK_CREATE_CODE_TTL,
    ) -> None:
        self._provisioner = provisioner
        self._forwarder = forwarder
        self._code_ttl = code_ttl

    async def import_batch(
        self,
        raw_bytes: bytes,
        filename: str,
        *,
        authorization: str | None = None,
    ) -> BatchResult:
        start = time.perf_counter()
        raw_rows = decode(raw_bytes, filename)

        aggregator = BatchAggregator(total=len(raw_rows))
        guard = DuplicateGuard()
        held: list[_HeldPatient] = []

        for index, raw_row in enumerate(raw_rows):
            if is_blank_row(raw_row):
                aggregator.skip(index)
                continue

            row = normalize_row(raw_row)
            try:
                guard.check(row.get("email"))
                record = validate_row(row)
                if record.role is Role.PACIENTE:
                    held.append(_HeldPatient(index=index, record=record, row=raw_row))
                    continue
                account = await self._provisioner.provision(record, self._code_ttl)
            except RowError as exc:
                logger.warning("Row %d rejected: %s", index, exc)
                aggregator.fail(index, raw_row, str(exc))
            except Exception as exc:  # noqa: BLE001
                logger.exception("Unexpected error on row %d", index)
                aggregator.fail(index, raw_row, str(exc) or exc.__class__.__name__)
            else:
                aggregator.succeed(index, account)

        await self._forward_patients(aggregator, held, authorization)

        result = aggregator.finish(time.perf_counter() - start)
        logger.info(
            "Import of %s finished: %d successful, %d failed, %d skipped, %d forwarded",
            filename,
            result.successful_count,
            result.failed_count,
            len(result.skipped),
            len(result.forwarded),
        )
        return result

    async def _forward_patients(
        self,
        aggregator: BatchAggregator,
        held: list[_HeldPatient],
        authorization: str | None,
    ) -> None:
        if not held:
            return
        outcome = await self._forwarder.forward([patient.record for patient in held], authorization=authorization)
        if outcome.failed:
            for patient in held:
                aggregator.fail(patient.index, patient.row, f"Patients service unavailable: {outcome.error}")
            return
        aggregator.forwarded(
            [patient.index for patient in held],
            accepted=outcome.accepted,
            rejected=outcome.rejected,
        )
