from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

import httpx

from medcore_users.exceptions import RemoteAPIError
from medcore_users.services.patients_api import ServiceClient

VERIFY_TOKEN_PATH = "/api/v1/auth/verify-token"


@dataclass(slots=True)
class TokenVerdict:
    """Outcome of asking the auth service about a bearer token."""

    allowed: bool
    status_code: int
    body: Any = None

    @property
    def user(self) -> Mapping[str, Any] | None:
        if isinstance(self.body, Mapping):
            user = self.body.get("user")
            if isinstance(user, Mapping):
                return user
        return None


class AuthServiceClient(ServiceClient):
    async def verify_token(self, authorization: str, allowed_roles: Sequence[str]) -> TokenVerdict:
        """Relay the caller's Authorization header to the auth service.

        A rejection is returned as a verdict carrying the auth service's own
        status and body; only an unreachable service raises ``RemoteAPIError``.
        """
        try:
            response = await self._client.get(
                VERIFY_TOKEN_PATH,
                params={"allowedRoles": ",".join(allowed_roles)},
                headers={"authorization": authorization},
            )
        except httpx.HTTPError as exc:
            raise RemoteAPIError(0, str(exc)) from exc

        try:
            body = response.json()
        except ValueError:
            body = {"message": response.text} if response.text else None

        return TokenVerdict(allowed=response.status_code < 400, status_code=response.status_code, body=body)
