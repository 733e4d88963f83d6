from __future__ import annotations

import json
from typing import Any

import httpx
import pytest

from medcore_users.config import Settings
from medcore_users.services.mailer import MailResult
from medcore_users.state import UserStore


class FakeMailer:
    def __init__(self) -> None:
        self.sent: list[dict[str, str]] = []
        self.fail_for: set[str] = set()

    async def send_verification(self, email: str, fullname: str, code: str) -> MailResult:
        if email.lower() in self.fail_for:
            return MailResult(success=False, error="SMTP server unavailable")
        self.sent.append({"email": email, "fullname": fullname, "code": code})
        return MailResult(success=True, message_id=f"<{len(self.sent)}@mail.example.com>")


class FakePatientsAPI:
    def __init__(self, *, status_code: int = 200, summary: dict[str, Any] | None = None) -> None:
        self.status_code = status_code
        self.summary = summary
        self.requests: list[dict[str, Any]] = []
        self.authorization: list[str | None] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.path != "/api/v1/patients/bulk":
            return httpx.Response(status_code=404)
        payload = json.loads(request.content.decode())
        self.requests.append(payload)
        self.authorization.append(request.headers.get("authorization"))
        if self.status_code >= 400:
            return httpx.Response(status_code=self.status_code, json={"message": "Patients service down"})
        summary = self.summary
        if summary is None:
            summary = {"successful": len(payload["patients"]), "failed": 0}
        return httpx.Response(status_code=self.status_code, json={"summary": summary})


class FakeAuthAPI:
    """Grants any bearer token whose role (``Bearer <ROLE>``) is in allowedRoles."""

    def __init__(self, *, reachable: bool = True) -> None:
        self.reachable = reachable
        self.calls: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        if not self.reachable:
            raise httpx.ConnectError("connection refused", request=request)
        allowed = request.url.params.get("allowedRoles", "").split(",")
        role = request.headers.get("authorization", "").removeprefix("Bearer ").strip()
        if role not in allowed:
            return httpx.Response(status_code=403, json={"error": "Forbidden", "requiredRoles": allowed})
        return httpx.Response(status_code=200, json={"user": {"id": "caller-1", "role": role}})


@pytest.fixture
def settings() -> Settings:
    return Settings(
        bcrypt_rounds=4,
        email_send_timeout_seconds=2,
        patients_service_base_url="https://patients.example.com",
        auth_service_base_url="https://auth.example.com",
    )


@pytest.fixture
def store() -> UserStore:
    return UserStore()


@pytest.fixture
def mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture
def patients_api() -> FakePatientsAPI:
    return FakePatientsAPI()


@pytest.fixture
def auth_api() -> FakeAuthAPI:
    return FakeAuthAPI()
