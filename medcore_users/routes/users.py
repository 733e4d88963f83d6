from __future__ import annotations

from collections.abc import Mapping
from typing import Annotated, Any

from fastapi import APIRouter, Body, Depends, Query, status
from pydantic import ValidationError

from medcore_users.auth import require_roles
from medcore_users.dependencies import get_users_service
from medcore_users.exceptions import UsersServiceError
from medcore_users.models import Role, UserAccount, UserStatus
from medcore_users.routes.errors import invalid_payload, to_http_error
from medcore_users.schemas import (
    GenericErrorResponse,
    Pagination,
    RoleCount,
    StatusCounts,
    UserCreatedResponse,
    UserListParams,
    UserListResponse,
    UserMessageResponse,
    UserResponse,
    UserStatsResponse,
    UserUpdate,
    user_create_adapter,
)
from medcore_users.services.users_service import UserPage, UsersService

router = APIRouter(prefix="/users", tags=["Users"])

Caller = Mapping[str, Any]
Service = Annotated[UsersService, Depends(get_users_service)]
AdminOnly = Annotated[Caller, Depends(require_roles(Role.ADMINISTRADOR))]
StaffOnly = Annotated[Caller, Depends(require_roles(Role.ADMINISTRADOR, Role.MEDICO, Role.ENFERMERA))]

NOT_FOUND = {status.HTTP_404_NOT_FOUND: {"model": GenericErrorResponse, "description": "User not found"}}
CREATE_ERRORS = {
    status.HTTP_400_BAD_REQUEST: {"model": GenericErrorResponse, "description": "User already exists"},
    status.HTTP_404_NOT_FOUND: {"model": GenericErrorResponse, "description": "Specialty or department not found"},
    status.HTTP_500_INTERNAL_SERVER_ERROR: {
        "model": GenericErrorResponse,
        "description": "Verification email could not be sent",
    },
}


def user_view(account: UserAccount) -> UserResponse:
    return UserResponse.model_validate(account.public_view())


def page_response(page: UserPage) -> UserListResponse:
    return UserListResponse(
        users=[user_view(account) for account in page.users],
        pagination=Pagination(
            total=page.total,
            page=page.page,
            limit=page.limit,
            totalPages=page.total_pages,
        ),
    )


@router.get("", response_model=UserListResponse)
async def list_users(
    service: Service,
    _caller: AdminOnly,
    role: Role | None = None,
    status_filter: Annotated[UserStatus | None, Query(alias="status")] = None,
    specialty_id: Annotated[str | None, Query(alias="specialtyId")] = None,
    q: str | None = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
) -> UserListResponse:
    params = UserListParams(
        role=role,
        status=status_filter,
        specialty_id=specialty_id,
        q=q,
        page=page,
        limit=limit,
    )
    return page_response(await service.list_users(params))


@router.get("/stats", response_model=UserStatsResponse)
async def get_user_stats(service: Service, _caller: AdminOnly) -> UserStatsResponse:
    stats = await service.get_stats()
    return UserStatsResponse(
        total=stats.total,
        byStatus=StatusCounts(active=stats.active, pending=stats.pending, inactive=stats.inactive),
        byRole=[RoleCount(role=role, count=count) for role, count in stats.by_role.items()],
    )


@router.get("/{user_id}", response_model=UserResponse, responses=NOT_FOUND)
async def get_user(user_id: str, service: Service, _caller: StaffOnly) -> UserResponse:
    try:
        return user_view(await service.get_user(user_id))
    except UsersServiceError as exc:
        raise to_http_error(exc) from exc


@router.post(
    "",
    response_model=UserCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    responses=CREATE_ERRORS,
)
async def create_user(
    body: Annotated[dict[str, Any], Body()],
    service: Service,
    _caller: AdminOnly,
) -> UserCreatedResponse:
    try:
        payload = user_create_adapter.validate_python(body)
    except ValidationError as exc:
        raise invalid_payload(exc) from exc

    try:
        account = await service.create_user(payload)
    except UsersServiceError as exc:
        raise to_http_error(exc) from exc
    return UserCreatedResponse(
        message="User created. Verification code sent by email.",
        **account.public_view(),
    )


@router.put("/{user_id}", response_model=UserMessageResponse, responses=NOT_FOUND)
async def update_user(
    user_id: str,
    update: UserUpdate,
    service: Service,
    _caller: AdminOnly,
) -> UserMessageResponse:
    try:
        account = await service.update_user(user_id, update)
    except UsersServiceError as exc:
        raise to_http_error(exc) from exc
    return UserMessageResponse(message="User updated successfully", user=user_view(account))


@router.delete("/{user_id}", response_model=UserMessageResponse, responses=NOT_FOUND)
async def deactivate_user(user_id: str, service: Service, _caller: AdminOnly) -> UserMessageResponse:
    try:
        account = await service.deactivate_user(user_id)
    except UsersServiceError as exc:
        raise to_http_error(exc) from exc
    return UserMessageResponse(message="User deactivated successfully", user=user_view(account))


@router.patch("/{user_id}/status", response_model=UserMessageResponse, responses=NOT_FOUND)
async def toggle_user_status(
    user_id: str,
    service: Service,
    _caller: AdminOnly,
    role: Role | None = None,
) -> UserMessageResponse:
    try:
        account = await service.toggle_status(user_id, role=role)
    except UsersServiceError as exc:
        raise to_http_error(exc) from exc
    return UserMessageResponse(message=f"User status changed to {account.status.value}", user=user_view(account))
