from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
import logging
from typing import Any

from medcore_users.exceptions import RemoteAPIError
from medcore_users.schemas import PatientCreate
from medcore_users.services.patients_api import PatientsServiceClient
from medcore_users.services.row_validator import ValidatedRecord

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ForwardResult:
    accepted: int = 0
    rejected: int = 0
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None


def split_full_name(fullname: str) -> tuple[str, str]:
    """Last whitespace-separated token is the last name, the rest the first name."""
    tokens = fullname.split()
    if not tokens:
        return "", ""
    if len(tokens) == 1:
        return tokens[0], ""
    return " ".join(tokens[:-1]), tokens[-1]


def to_patient_payload(record: ValidatedRecord) -> dict[str, Any]:
    user = record.user
    first_name, last_name = split_full_name(user.fullname)
    payload: dict[str, Any] = {
        "firstName": first_name,
        "lastName": last_name,
        "email": record.email.lower(),
        "phone": user.phone,
        "birthDate": user.date_of_birth.isoformat(),
        "genero": user.gender,
    }
    if isinstance(user, PatientCreate) and user.paciente is not None and user.paciente.address:
        payload["address"] = user.paciente.address
    if user.document_number:
        payload["documentNumber"] = user.document_number
    return payload


def _count(summary: Any, key: str) -> int:
    if not isinstance(summary, Mapping):
        return 0
    value = summary.get(key)
    return value if isinstance(value, int) and not isinstance(value, bool) else 0


class PatientForwarder:
    """Send every patient row of a batch to the patients service in one request."""

    def __init__(self, client_factory: Callable[[], PatientsServiceClient]) -> None:
        self._client_factory = client_factory

    async def forward(
        self,
        records: Sequence[ValidatedRecord],
        *,
        authorization: str | None = None,
    ) -> ForwardResult:
        if not records:
            return ForwardResult()

        payload = [to_patient_payload(record) for record in records]
        try:
            async with self._client_factory() as client:
                body = await client.forward_patients(payload, authorization=authorization)
        except RemoteAPIError as exc:
            logger.error("Forwarding %d patient rows failed: %s", len(records), exc)
            return ForwardResult(error=str(exc))

        summary = body.get("summary")
        result = ForwardResult(accepted=_count(summary, "successful"), rejected=_count(summary, "failed"))
        logger.info(
            "Patients service accepted %d and rejected %d of %d rows",
            result.accepted,
            result.rejected,
            len(records),
        )
        return result
