from __future__ import annotations

from datetime import timedelta
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

# Verification-code lifetime per entry point.
SINGLE_CREATE_CODE_TTL = timedelta(minutes=15)
BULK_CREATE_CODE_TTL = timedelta(hours=24)

ACCEPTED_EXTENSIONS = (".csv", ".xlsx", ".xls", ".json")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    patients_service_base_url: str = "http://localhost:3003"
    patients_bulk_path: str = "/api/v1/patients/bulk"
    auth_service_base_url: str = "http://localhost:3001"
    auth_timeout_seconds: float = 5.0
    outbound_timeout_seconds: float = 10.0
    max_upload_bytes: int = 60 * 1024 * 1024

    bcrypt_rounds: int = 10
    single_create_code_ttl_minutes: int = int(SINGLE_CREATE_CODE_TTL.total_seconds() // 60)
    bulk_create_code_ttl_hours: int = int(BULK_CREATE_CODE_TTL.total_seconds() // 3600)

    email_enabled: bool = True
    email_send_timeout_seconds: float = 20.0
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_use_tls: bool = True
    smtp_use_ssl: bool = False
    email_from_address: str = "no-reply@medcore.local"
    email_from_name: str = "MedCore"

    # Path prefix when served behind a reverse proxy (e.g. "/users-service").
    root_path: str = ""

    @property
    def single_create_code_ttl(self) -> timedelta:
        return timedelta(minutes=self.single_create_code_ttl_minutes)

    @property
    def bulk_create_code_ttl(self) -> timedelta:
        return timedelta(hours=self.bulk_create_code_ttl_hours)


@lru_cache
def get_settings() -> Settings:
    return Settings()
