from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Body, Query, status
from pydantic import ValidationError

from medcore_users.exceptions import UsersServiceError
from medcore_users.models import Role, UserStatus
from medcore_users.routes.errors import invalid_payload, to_http_error
from medcore_users.routes.users import CREATE_ERRORS, AdminOnly, Service, StaffOnly, page_response, user_view
from medcore_users.schemas import (
    DoctorCreate,
    GenericErrorResponse,
    UserCreatedResponse,
    UserListParams,
    UserListResponse,
    UserMessageResponse,
    UserResponse,
    UserUpdate,
)

router = APIRouter(prefix="/users/doctors", tags=["Doctors"])

SUBJECT = "Doctor"
DOCTOR_NOT_FOUND = {status.HTTP_404_NOT_FOUND: {"model": GenericErrorResponse, "description": "Doctor not found"}}


@router.get("", response_model=UserListResponse)
async def list_doctors(
    service: Service,
    _caller: StaffOnly,
    status_filter: Annotated[UserStatus | None, Query(alias="status")] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
) -> UserListResponse:
    params = UserListParams(role=Role.MEDICO, status=status_filter, page=page, limit=limit)
    return page_response(await service.list_users(params))


@router.post("", response_model=UserCreatedResponse, status_code=status.HTTP_201_CREATED, responses=CREATE_ERRORS)
async def create_doctor(
    body: Annotated[dict[str, Any], Body()],
    service: Service,
    _caller: AdminOnly,
) -> UserCreatedResponse:
    try:
        payload = DoctorCreate.model_validate({**body, "role": Role.MEDICO.value})
    except ValidationError as exc:
        raise invalid_payload(exc) from exc

    try:
        account = await service.create_user(payload)
    except UsersServiceError as exc:
        raise to_http_error(exc, subject=SUBJECT) from exc
    return UserCreatedResponse(
        message="Doctor created. Verification code sent by email.",
        **account.public_view(),
    )


@router.get("/{user_id}", response_model=UserResponse, responses=DOCTOR_NOT_FOUND)
async def get_doctor(user_id: str, service: Service, _caller: StaffOnly) -> UserResponse:
    try:
        return user_view(await service.get_user(user_id, role=Role.MEDICO))
    except UsersServiceError as exc:
        raise to_http_error(exc, subject=SUBJECT) from exc


@router.put("/{user_id}", response_model=UserMessageResponse, responses=DOCTOR_NOT_FOUND)
async def update_doctor(
    user_id: str,
    update: UserUpdate,
    service: Service,
    _caller: AdminOnly,
) -> UserMessageResponse:
    try:
        account = await service.update_user(user_id, update, role=Role.MEDICO)
    except UsersServiceError as exc:
        raise to_http_error(exc, subject=SUBJECT) from exc
    return UserMessageResponse(message="Doctor updated successfully", user=user_view(account))


@router.patch("/status/{user_id}", response_model=UserMessageResponse, responses=DOCTOR_NOT_FOUND)
async def toggle_doctor_status(user_id: str, service: Service, _caller: AdminOnly) -> UserMessageResponse:
    try:
        account = await service.toggle_status(user_id, role=Role.MEDICO)
    except UsersServiceError as exc:
        raise to_http_error(exc, subject=SUBJECT) from exc
    return UserMessageResponse(
        message=f"Doctor status updated to {account.status.value}",
        user=user_view(account),
    )
