from __future__ import annotations

from collections.abc import Callable, Mapping
import logging
from typing import Annotated, Any

from fastapi import Depends, Header, status

from medcore_users.dependencies import provide_auth_client_factory
from medcore_users.exceptions import AccessDeniedError, RemoteAPIError
from medcore_users.models import Role
from medcore_users.services.auth_api import AuthServiceClient

logger = logging.getLogger(__name__)

AUTH_UNAVAILABLE_BODY = {
    "error": "Service unavailable",
    "message": "The authentication service is not available right now. Please try again later.",
}


def require_roles(*roles: Role) -> Callable[..., Any]:
    """Build a dependency admitting only callers the auth service grants one of ``roles``.

    Resolves to the caller's user record as reported by the auth service.
    """
    allowed = [role.value for role in roles]

    async def dependency(
        client_factory: Annotated[Callable[[], AuthServiceClient], Depends(provide_auth_client_factory)],
        authorization: Annotated[str | None, Header()] = None,
    ) -> Mapping[str, Any]:
        if not authorization:
            raise AccessDeniedError(status.HTTP_401_UNAUTHORIZED, {"error": "No token provided"})

        try:
            async with client_factory() as client:
                verdict = await client.verify_token(authorization, allowed)
        except RemoteAPIError as exc:
            logger.error("Could not reach the auth service: %s", exc)
            raise AccessDeniedError(status.HTTP_503_SERVICE_UNAVAILABLE, AUTH_UNAVAILABLE_BODY) from exc

        if not verdict.allowed:
            raise AccessDeniedError(verdict.status_code, verdict.body)
        return verdict.user or {}

    return dependency
