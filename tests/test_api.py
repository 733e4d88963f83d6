from __future__ import annotations

import httpx
import pytest

from medcore_users.config import get_settings
from medcore_users.dependencies import get_mailer, provide_auth_client_factory, provide_patients_client_factory
from medcore_users.main import app
from medcore_users.services.auth_api import AuthServiceClient
from medcore_users.services.patients_api import PatientsServiceClient
from medcore_users.state import get_user_store

ADMIN = {"authorization": "Bearer ADMINISTRADOR"}
DOCTOR = {"authorization": "Bearer MEDICO"}
PATIENT = {"authorization": "Bearer PACIENTE"}

CSV_HEADER = "email,fullname,password,dateOfBirth,role,genero"


@pytest.fixture(autouse=True)
def clear_overrides():
    original = dict(app.dependency_overrides)
    yield
    app.dependency_overrides = original


@pytest.fixture
def wired(store, mailer, settings, auth_api, patients_api):
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_user_store] = lambda: store
    app.dependency_overrides[get_mailer] = lambda: mailer
    app.dependency_overrides[provide_auth_client_factory] = lambda: lambda: AuthServiceClient(
        base_url=settings.auth_service_base_url,
        timeout=5,
        transport=httpx.MockTransport(auth_api.handler),
    )
    app.dependency_overrides[provide_patients_client_factory] = lambda: lambda: PatientsServiceClient(
        base_url=settings.patients_service_base_url,
        timeout=5,
        transport=httpx.MockTransport(patients_api.handler),
    )
    return app


def _client() -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver")


def _user_body(email: str = "rosa@clinic.com", **extra):
    return {
        "email": email,
        "current_password": "secret1",
        "fullname": "Rosa Diaz",
        "date_of_birth": "1980-04-20",
        "role": "ADMINISTRADOR",
        **extra,
    }


@pytest.mark.asyncio
async def test_health_check():
    async with _client() as client:
        response = await client.get("/")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_bulk_endpoint_success(wired, store, mailer, patients_api):
    content = "\n".join(
        [
            CSV_HEADER,
            "root@clinic.com,Rosa Diaz,secret3,1979-12-01,admin,",
            ",,,,,",
            "luis@clinic.com,Luis Perez,secret4,1990-01-15,paciente,M",
            "bad-email,Ana Gomez,secret1,1985-03-02,admin,",
        ]
    ).encode("utf-8")

    async with _client() as client:
        response = await client.post(
            "/users/bulk",
            files={"file": ("users.csv", content, "text/csv")},
            headers=ADMIN,
        )

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Import completed"
    assert body["summary"] == {"total": 4, "successful": 2, "failed": 1, "skipped": 1}
    results = body["results"]
    assert results["total"] == 4
    assert results["skipped"] == [1]
    assert results["forwarded"] == [2]
    assert [row["index"] for row in results["successful"]] == [0]
    created = results["successful"][0]["patient"]
    assert created["email"] == "root@clinic.com"
    assert created["status"] == "PENDING"
    assert "password_hash" not in created
    assert "verification_code" not in created
    assert results["failed"][0]["index"] == 3
    assert results["failed"][0]["row"]["password"] == "***"
    assert results["failed"][0]["error"].startswith("email:")
    assert patients_api.authorization == ["Bearer ADMINISTRADOR"]
    assert await store.count() == 1


@pytest.mark.asyncio
async def test_bulk_requires_token(wired):
    async with _client() as client:
        response = await client.post("/users/bulk", files={"file": ("users.csv", b"email\n", "text/csv")})

    assert response.status_code == 401
    assert response.json() == {"error": "No token provided"}


@pytest.mark.asyncio
async def test_bulk_relays_auth_rejection(wired):
    async with _client() as client:
        response = await client.post(
            "/users/bulk",
            files={"file": ("users.csv", b"email\n", "text/csv")},
            headers=DOCTOR,
        )

    assert response.status_code == 403
    assert response.json() == {"error": "Forbidden", "requiredRoles": ["ADMINISTRADOR"]}


@pytest.mark.asyncio
async def test_auth_service_unreachable(wired, auth_api):
    auth_api.reachable = False

    async with _client() as client:
        response = await client.get("/users", headers=ADMIN)

    assert response.status_code == 503
    assert response.json()["error"] == "Service unavailable"


@pytest.mark.asyncio
async def test_bulk_rejects_unsupported_format(wired):
    async with _client() as client:
        response = await client.post(
            "/users/bulk",
            files={"file": ("users.txt", b"email\n", "text/plain")},
            headers=ADMIN,
        )

    assert response.status_code == 400
    assert response.json()["detail"].startswith("Unsupported file format: 'users.txt'")


@pytest.mark.asyncio
async def test_bulk_rejects_malformed_json(wired):
    async with _client() as client:
        response = await client.post(
            "/users/bulk",
            files={"file": ("users.json", b'{"email": "a@x.com"}', "application/json")},
            headers=ADMIN,
        )

    assert response.status_code == 400
    assert response.json() == {"detail": "Malformed file: JSON content must be an array of objects"}


@pytest.mark.asyncio
async def test_bulk_rejects_oversized_upload(wired, settings):
    app.dependency_overrides[get_settings] = lambda: settings.model_copy(update={"max_upload_bytes": 10})
    content = f"{CSV_HEADER}\n".encode("utf-8")

    async with _client() as client:
        response = await client.post(
            "/users/bulk",
            files={"file": ("users.csv", content, "text/csv")},
            headers=ADMIN,
        )

    assert response.status_code == 400
    assert response.json() == {
        "detail": "Upload exceeds the maximum allowed size.",
        "limit": 10,
        "actual": len(content),
    }


@pytest.mark.asyncio
async def test_create_and_fetch_user(wired, mailer):
    async with _client() as client:
        created = await client.post("/users", json=_user_body(), headers=ADMIN)
        duplicate = await client.post("/users", json=_user_body("ROSA@clinic.com"), headers=ADMIN)
        user_id = created.json()["id"]
        fetched = await client.get(f"/users/{user_id}", headers=DOCTOR)
        forbidden = await client.get(f"/users/{user_id}", headers=PATIENT)
        missing = await client.get("/users/does-not-exist", headers=ADMIN)

    assert created.status_code == 201
    body = created.json()
    assert body["message"] == "User created. Verification code sent by email."
    assert body["email"] == "rosa@clinic.com"
    assert "verification_code" not in body
    assert len(mailer.sent) == 1

    assert duplicate.status_code == 400
    assert duplicate.json() == {"detail": "User already exists"}

    assert fetched.status_code == 200
    assert fetched.json()["fullname"] == "Rosa Diaz"
    assert forbidden.status_code == 403
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_create_user_validation_and_email_failure(wired, mailer, store):
    mailer.fail_for.add("rosa@clinic.com")

    async with _client() as client:
        invalid = await client.post("/users", json=_user_body(current_password="abc"), headers=ADMIN)
        failed_email = await client.post("/users", json=_user_body(), headers=ADMIN)

    assert invalid.status_code == 422
    assert invalid.json()["detail"] == [
        "current_password: must be at least 6 characters long and must contain at least one number"
    ]
    assert failed_email.status_code == 500
    assert failed_email.json() == {"detail": "Error sending verification email"}
    assert await store.count() == 0


@pytest.mark.asyncio
async def test_list_update_status_and_delete(wired):
    async with _client() as client:
        for index in range(3):
            await client.post("/users", json=_user_body(f"admin{index}@clinic.com"), headers=ADMIN)
        listing = await client.get("/users", params={"limit": 2, "status": "PENDING"}, headers=ADMIN)
        user_id = listing.json()["users"][0]["id"]

        updated = await client.put(f"/users/{user_id}", json={"phone": "555-0101"}, headers=ADMIN)
        toggled = await client.patch(f"/users/{user_id}/status", headers=ADMIN)
        stats = await client.get("/users/stats", headers=ADMIN)
        deleted = await client.delete(f"/users/{user_id}", headers=ADMIN)
        bad_limit = await client.get("/users", params={"limit": 500}, headers=ADMIN)

    assert listing.status_code == 200
    assert listing.json()["pagination"] == {"total": 3, "page": 1, "limit": 2, "totalPages": 2}
    assert len(listing.json()["users"]) == 2

    assert updated.status_code == 200
    assert updated.json()["message"] == "User updated successfully"
    assert updated.json()["user"]["phone"] == "555-0101"

    assert toggled.json()["user"]["status"] == "ACTIVE"

    assert stats.json() == {
        "total": 3,
        "byStatus": {"active": 1, "pending": 2, "inactive": 0},
        "byRole": [{"role": "ADMINISTRADOR", "count": 3}],
    }

    assert deleted.status_code == 200
    assert deleted.json()["message"] == "User deactivated successfully"
    assert deleted.json()["user"]["status"] == "INACTIVE"

    assert bad_limit.status_code == 422


def _doctor_body(email: str = "ana@clinic.com", **medico):
    return {
        "email": email,
        "current_password": "secret1",
        "fullname": "Ana Gomez",
        "date_of_birth": "1985-03-02",
        "medico": {"specialty": "Cardiología", "license_number": "LIC-1", **medico},
    }


@pytest.mark.asyncio
async def test_create_user_accepts_long_password(wired, store):
    async with _client() as client:
        response = await client.post("/users", json=_user_body(current_password="a1" * 40), headers=ADMIN)

    assert response.status_code == 201
    assert await store.count() == 1


@pytest.mark.asyncio
async def test_unknown_specialty_or_department_is_not_found(wired, store):
    nurse = {
        "email": "eva@clinic.com",
        "current_password": "secret1",
        "fullname": "Eva Ruiz",
        "date_of_birth": "1992-09-30",
        "enfermera": {"department": "Quirófano"},
    }

    async with _client() as client:
        doctor = await client.post(
            "/users",
            json={**_doctor_body(specialty="Cronología"), "role": "MEDICO"},
            headers=ADMIN,
        )
        nurse_response = await client.post("/users/nurses", json=nurse, headers=ADMIN)

    assert doctor.status_code == 404
    assert doctor.json() == {"detail": "Specialty 'Cronología' not found"}
    assert nurse_response.status_code == 404
    assert nurse_response.json() == {"detail": "Department 'Quirófano' not found"}
    assert await store.count() == 0


@pytest.mark.asyncio
async def test_doctor_endpoints_are_scoped_to_doctors(wired, store):
    specialty = await store.add_specialty("Cardiología")

    async with _client() as client:
        created = await client.post("/users/doctors", json={**_doctor_body(), "role": "ADMINISTRADOR"}, headers=ADMIN)
        admin = await client.post("/users", json=_user_body(), headers=ADMIN)
        doctor_id = created.json()["id"]
        admin_id = admin.json()["id"]

        listing = await client.get("/users/doctors", headers=DOCTOR)
        fetched = await client.get(f"/users/doctors/{doctor_id}", headers=DOCTOR)
        moved = await client.put(
            f"/users/doctors/{doctor_id}",
            json={"medico": {"specialtyId": "spec-2"}},
            headers=ADMIN,
        )
        toggled = await client.patch(f"/users/doctors/status/{doctor_id}", headers=ADMIN)

        wrong_get = await client.get(f"/users/doctors/{admin_id}", headers=ADMIN)
        wrong_put = await client.put(f"/users/doctors/{admin_id}", json={"phone": "555"}, headers=ADMIN)
        wrong_status = await client.patch(f"/users/doctors/status/{admin_id}", headers=ADMIN)
        patient_create = await client.post("/users/doctors", json=_doctor_body("x@clinic.com"), headers=PATIENT)

    assert created.status_code == 201
    assert created.json()["role"] == "MEDICO"
    assert created.json()["message"] == "Doctor created. Verification code sent by email."
    assert created.json()["profile"] == {"specialty_id": specialty.id, "license_number": "LIC-1"}

    assert listing.json()["pagination"]["total"] == 1
    assert [user["id"] for user in listing.json()["users"]] == [doctor_id]
    assert fetched.status_code == 200

    assert moved.status_code == 200
    assert moved.json()["message"] == "Doctor updated successfully"
    assert moved.json()["user"]["profile"] == {"specialty_id": "spec-2", "license_number": "LIC-1"}

    assert toggled.json()["message"] == "Doctor status updated to ACTIVE"

    for response in (wrong_get, wrong_put, wrong_status):
        assert response.status_code == 404
        assert response.json() == {"detail": "Doctor not found"}
    assert patient_create.status_code == 403
    assert (await store.get(admin_id)).status.value == "PENDING"


@pytest.mark.asyncio
async def test_nurse_endpoints_are_scoped_to_nurses(wired, store):
    department = await store.add_department("Urgencias")
    nurse = {
        "email": "eva@clinic.com",
        "current_password": "secret1",
        "fullname": "Eva Ruiz",
        "date_of_birth": "1992-09-30",
        "enfermera": {"department": "urgencias"},
    }

    async with _client() as client:
        created = await client.post("/users/nurses", json=nurse, headers=ADMIN)
        admin = await client.post("/users", json=_user_body(), headers=ADMIN)
        nurse_id = created.json()["id"]
        admin_id = admin.json()["id"]

        fetched = await client.get(f"/users/nurses/{nurse_id}", headers=DOCTOR)
        toggled = await client.patch(f"/users/nurses/status/{nurse_id}", headers=ADMIN)
        wrong_get = await client.get(f"/users/nurses/{admin_id}", headers=ADMIN)
        wrong_status = await client.patch(f"/users/nurses/status/{admin_id}", headers=ADMIN)

    assert created.status_code == 201
    assert created.json()["role"] == "ENFERMERA"
    assert created.json()["profile"] == {"department_id": department.id}
    assert fetched.json()["fullname"] == "Eva Ruiz"
    assert toggled.json()["message"] == "Nurse status updated to ACTIVE"
    assert wrong_get.status_code == 404
    assert wrong_get.json() == {"detail": "Nurse not found"}
    assert wrong_status.status_code == 404
