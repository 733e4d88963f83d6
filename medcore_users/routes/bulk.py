from __future__ import annotations

from collections.abc import Mapping
import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, File, Header, HTTPException, UploadFile, status
from fastapi.responses import JSONResponse

from medcore_users.auth import require_roles
from medcore_users.config import ACCEPTED_EXTENSIONS, Settings, get_settings
from medcore_users.dependencies import get_bulk_import_service
from medcore_users.exceptions import ImportFormatError, UnsupportedFormatError, UploadTooLargeError
from medcore_users.models import Role
from medcore_users.schemas import (
    BulkImportResponse,
    FailedRow,
    GenericErrorResponse,
    ImportResults,
    ImportSummary,
    SuccessfulRow,
    UploadSizeErrorResponse,
    UserResponse,
)
from medcore_users.services.bulk_processor import BatchResult, BulkImportService
from medcore_users.services.tabular_decoder import file_extension

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["Bulk import"])

READ_CHUNK_BYTES = 1024 * 1024


async def read_limited(file: UploadFile, limit: int) -> bytes:
    """Read the upload, refusing to buffer more than ``limit`` bytes."""
    if file.size is not None and file.size > limit:
        raise UploadTooLargeError(limit=limit, actual=file.size)

    chunks: list[bytes] = []
    total = 0
    while chunk := await file.read(READ_CHUNK_BYTES):
        total += len(chunk)
        if total > limit:
            raise UploadTooLargeError(limit=limit, actual=total)
        chunks.append(chunk)
    return b"".join(chunks)


@router.post(
    "/bulk",
    response_model=BulkImportResponse,
    status_code=status.HTTP_200_OK,
    responses={
        status.HTTP_400_BAD_REQUEST: {
            "content": {
                "application/json": {
                    "schema": {
                        "oneOf": [
                            GenericErrorResponse.model_json_schema(),
                            UploadSizeErrorResponse.model_json_schema(),
                        ]
                    },
                    "examples": {
                        "format": {
                            "summary": "Unreadable upload",
                            "value": {"detail": "Unsupported file format: 'users.txt' (expected .csv, .xlsx, .xls or .json)"},
                        },
                        "size": {
                            "summary": "Upload too large",
                            "value": {
                                "detail": "Upload exceeds the maximum allowed size.",
                                "limit": 62914560,
                                "actual": 70000000,
                            },
                        },
                    },
                }
            },
            "description": "File could not be decoded or exceeds the size limit",
        },
        status.HTTP_500_INTERNAL_SERVER_ERROR: {
            "model": GenericErrorResponse,
            "description": "Internal server error",
        },
    },
)
async def upload_bulk_users(
    file: Annotated[
        UploadFile,
        File(..., description="CSV, XLSX, XLS or JSON file with one user per row"),
    ],
    settings: Annotated[Settings, Depends(get_settings)],
    service: Annotated[BulkImportService, Depends(get_bulk_import_service)],
    _caller: Annotated[Mapping[str, Any], Depends(require_roles(Role.ADMINISTRADOR))],
    authorization: Annotated[str | None, Header()] = None,
) -> BulkImportResponse:
    filename = file.filename or ""
    try:
        if f".{file_extension(filename)}" not in ACCEPTED_EXTENSIONS:
            raise UnsupportedFormatError(filename)
        contents = await read_limited(file, settings.max_upload_bytes)
        result = await service.import_batch(contents, filename, authorization=authorization)
    except UploadTooLargeError as exc:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=UploadSizeErrorResponse(
                detail="Upload exceeds the maximum allowed size.",
                limit=exc.limit,
                actual=exc.actual,
            ).model_dump(),
        )
    except ImportFormatError as exc:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=GenericErrorResponse(detail=str(exc)).model_dump(),
        )
    except Exception as exc:  # noqa: BLE001 - log unexpected errors
        logger.exception("Unhandled error while importing users from %s", filename)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error.",
        ) from exc

    return _result_to_response(result)


def _result_to_response(result: BatchResult) -> BulkImportResponse:
    return BulkImportResponse(
        message=result.message,
        summary=ImportSummary(
            total=result.total,
            successful=result.successful_count,
            failed=result.failed_count,
            skipped=len(result.skipped),
        ),
        results=ImportResults(
            successful=[
                SuccessfulRow(index=row.index, patient=UserResponse.model_validate(row.account.public_view()))
                for row in result.successful
            ],
            failed=[FailedRow(index=row.index, row=row.row, error=row.error) for row in result.failed],
            skipped=result.skipped,
            forwarded=result.forwarded,
            total=result.total,
        ),
    )
