from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Body, status
from pydantic import ValidationError

from medcore_users.exceptions import UsersServiceError
from medcore_users.models import Role
from medcore_users.routes.errors import invalid_payload, to_http_error
from medcore_users.routes.users import CREATE_ERRORS, AdminOnly, Service, StaffOnly, user_view
from medcore_users.schemas import (
    GenericErrorResponse,
    NurseCreate,
    UserCreatedResponse,
    UserMessageResponse,
    UserResponse,
    UserUpdate,
)

router = APIRouter(prefix="/users/nurses", tags=["Nurses"])

SUBJECT = "Nurse"
NURSE_NOT_FOUND = {status.HTTP_404_NOT_FOUND: {"model": GenericErrorResponse, "description": "Nurse not found"}}


@router.post("", response_model=UserCreatedResponse, status_code=status.HTTP_201_CREATED, responses=CREATE_ERRORS)
async def create_nurse(
    body: Annotated[dict[str, Any], Body()],
    service: Service,
    _caller: AdminOnly,
) -> UserCreatedResponse:
    try:
        payload = NurseCreate.model_validate({**body, "role": Role.ENFERMERA.value})
    except ValidationError as exc:
        raise invalid_payload(exc) from exc

    try:
        account = await service.create_user(payload)
    except UsersServiceError as exc:
        raise to_http_error(exc, subject=SUBJECT) from exc
    return UserCreatedResponse(
        message="Nurse created. Verification code sent by email.",
        **account.public_view(),
    )


@router.get("/{user_id}", response_model=UserResponse, responses=NURSE_NOT_FOUND)
async def get_nurse(user_id: str, service: Service, _caller: StaffOnly) -> UserResponse:
    try:
        return user_view(await service.get_user(user_id, role=Role.ENFERMERA))
    except UsersServiceError as exc:
        raise to_http_error(exc, subject=SUBJECT) from exc


@router.put("/{user_id}", response_model=UserMessageResponse, responses=NURSE_NOT_FOUND)
async def update_nurse(
    user_id: str,
    update: UserUpdate,
    service: Service,
    _caller: AdminOnly,
) -> UserMessageResponse:
    try:
        account = await service.update_user(user_id, update, role=Role.ENFERMERA)
    except UsersServiceError as exc:
        raise to_http_error(exc, subject=SUBJECT) from exc
    return UserMessageResponse(message="Nurse updated successfully", user=user_view(account))


@router.patch("/status/{user_id}", response_model=UserMessageResponse, responses=NURSE_NOT_FOUND)
async def toggle_nurse_status(user_id: str, service: Service, _caller: AdminOnly) -> UserMessageResponse:
    try:
        account = await service.toggle_status(user_id, role=Role.ENFERMERA)
    except UsersServiceError as exc:
        raise to_http_error(exc, subject=SUBJECT) from exc
    return UserMessageResponse(
        message=f"Nurse status updated to {account.status.value}",
        user=user_view(account),
    )
