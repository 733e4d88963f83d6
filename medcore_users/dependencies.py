"""Shared FastAPI dependencies wiring the services to settings and the store."""

from __future__ import annotations

from collections.abc import Callable
from typing import Annotated

from fastapi import Depends

from medcore_users.config import Settings, get_settings
from medcore_users.services.account_provisioner import AccountProvisioner
from medcore_users.services.auth_api import AuthServiceClient
from medcore_users.services.bulk_processor import BulkImportService
from medcore_users.services.mailer import VerificationMailer, VerificationSender
from medcore_users.services.patient_forwarder import PatientForwarder
from medcore_users.services.patients_api import PatientsServiceClient
from medcore_users.services.users_service import UsersService
from medcore_users.state import UserStore, get_user_store


def get_mailer(settings: Annotated[Settings, Depends(get_settings)]) -> VerificationSender:
    return VerificationMailer(settings)


def provide_patients_client_factory(
    settings: Annotated[Settings, Depends(get_settings)],
) -> Callable[[], PatientsServiceClient]:
    def factory() -> PatientsServiceClient:
        return PatientsServiceClient(
            base_url=settings.patients_service_base_url,
            bulk_path=settings.patients_bulk_path,
            timeout=settings.outbound_timeout_seconds,
        )

    return factory


def provide_auth_client_factory(
    settings: Annotated[Settings, Depends(get_settings)],
) -> Callable[[], AuthServiceClient]:
    def factory() -> AuthServiceClient:
        return AuthServiceClient(
            base_url=settings.auth_service_base_url,
            timeout=settings.auth_timeout_seconds,
        )

    return factory


def get_provisioner(
    store: Annotated[UserStore, Depends(get_user_store)],
    mailer: Annotated[VerificationSender, Depends(get_mailer)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> AccountProvisioner:
    return AccountProvisioner(store=store, mailer=mailer, settings=settings)


def get_users_service(
    store: Annotated[UserStore, Depends(get_user_store)],
    provisioner: Annotated[AccountProvisioner, Depends(get_provisioner)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> UsersService:
    return UsersService(store=store, provisioner=provisioner, settings=settings)


def get_bulk_import_service(
    provisioner: Annotated[AccountProvisioner, Depends(get_provisioner)],
    client_factory: Annotated[Callable[[], PatientsServiceClient], Depends(provide_patients_client_factory)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> BulkImportService:
    return BulkImportService(
        provisioner=provisioner,
        forwarder=PatientForwarder(client_factory),
        code_ttl=settings.bulk_create_code_ttl,
    )
