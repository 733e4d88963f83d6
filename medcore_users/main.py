from __future__ import annotations

from contextlib import asynccontextmanager
import logging
import os

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from medcore_users.config import get_settings
from medcore_users.exceptions import AccessDeniedError
from medcore_users.routes.bulk import router as bulk_router
from medcore_users.routes.doctors import router as doctors_router
from medcore_users.routes.nurses import router as nurses_router
from medcore_users.routes.users import router as users_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    settings = get_settings()
    logger.info(
        "Starting users service with auth_service=%s, patients_service=%s, email_enabled=%s",
        settings.auth_service_base_url,
        settings.patients_service_base_url,
        settings.email_enabled,
    )
    yield


app = FastAPI(
    title="MedCore Users Service",
    description="Doctor, nurse, patient and administrator accounts with bulk import from spreadsheets.",
    version="0.1.0",
    lifespan=lifespan,
    root_path=get_settings().root_path,
)

app.include_router(bulk_router)
# Role routers go before /users/{user_id} so their static prefixes win.
app.include_router(doctors_router)
app.include_router(nurses_router)
app.include_router(users_router)


@app.exception_handler(AccessDeniedError)
async def access_denied_handler(_: Request, exc: AccessDeniedError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.body)


# Configure root logger level from environment (defaults to INFO in production)
log_level = os.getenv("LOG_LEVEL", "INFO").upper()
logging.getLogger().setLevel(log_level)


@app.get("/", tags=["Health"], summary="Health check")
async def health_check() -> dict[str, str]:
    return {"status": "ok"}
