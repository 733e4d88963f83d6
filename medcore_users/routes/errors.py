from __future__ import annotations

import logging

from fastapi import HTTPException, status
from pydantic import ValidationError

from medcore_users.exceptions import (
    ConflictError,
    DepartmentNotFoundError,
    RowError,
    SpecialtyNotFoundError,
    UserAlreadyExistsError,
    UserNotFoundError,
    UsersServiceError,
    VerificationEmailError,
)
from medcore_users.services.row_validator import format_validation_errors

logger = logging.getLogger(__name__)


def to_http_error(exc: UsersServiceError, *, subject: str = "User") -> HTTPException:
    """Map a service error to the response the users endpoints return for it."""
    if isinstance(exc, UserNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{subject} not found")
    if isinstance(exc, (SpecialtyNotFoundError, DepartmentNotFoundError)):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, UserAlreadyExistsError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, ConflictError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, VerificationEmailError):
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error sending verification email",
        )
    if isinstance(exc, RowError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    logger.error("Unmapped service error: %s", exc)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal server error.")


def invalid_payload(exc: ValidationError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail=format_validation_errors(exc),
    )
