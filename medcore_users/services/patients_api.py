from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

import httpx

from medcore_users.exceptions import RemoteAPIError


class ServiceClient:
    """Async httpx wrapper shared by the sibling-service clients."""

    def __init__(
        self,
        *,
        base_url: str,
        timeout: float,
        client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if client is not None and transport is not None:
            raise ValueError("Specify either a custom client or transport, not both.")

        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={"accept": "application/json"},
            transport=transport,
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    @staticmethod
    def _error_detail(response: httpx.Response) -> str | None:
        try:
            body = response.json()
        except ValueError:
            return response.text or None
        if isinstance(body, Mapping):
            for key in ("detail", "message", "error"):
                value = body.get(key)
                if isinstance(value, str):
                    return value
                if isinstance(value, list) and value:
                    return str(value[0])
        return None

    @classmethod
    def _raise_error(cls, response: httpx.Response) -> None:
        raise RemoteAPIError(response.status_code, cls._error_detail(response))


class PatientsServiceClient(ServiceClient):
    """Client for the sibling patients service's bulk endpoint."""

    def __init__(self, *, bulk_path: str = "/api/v1/patients/bulk", **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._bulk_path = bulk_path

    async def forward_patients(
        self,
        patients: Sequence[Mapping[str, Any]],
        *,
        authorization: str | None = None,
    ) -> Mapping[str, Any]:
        headers = {"authorization": authorization} if authorization else None
        try:
            response = await self._client.post(
                self._bulk_path,
                json={"patients": list(patients)},
                headers=headers,
            )
        except httpx.HTTPError as exc:
            raise RemoteAPIError(0, str(exc)) from exc

        if response.status_code >= 400:
            self._raise_error(response)

        try:
            body = response.json()
        except ValueError as exc:
            raise RemoteAPIError(response.status_code, "Response body is not JSON") from exc
        return body if isinstance(body, Mapping) else {}
