"""
api.py - FastAPI HTTP layer for the invoice validator.

Endpoints:
  - POST /api/invoice/validate   (multipart upload, field "file")
  - GET  /api/invoice/sample
  - GET  /api/health
  - GET  /api/health/ping

Every response, including errors, uses the ApiResponse envelope
{success, data?, error?, message?}. No validation logic lives here.
"""

from __future__ import annotations

import os
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import uvicorn
from fastapi import Depends, FastAPI, File, Query, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import ValidationConfig, load_config
from extract import MAX_FILE_SIZE_BYTES, SUPPORTED_EXTENSIONS, ParseError
from logging_config import get_logger, setup_logging_from_env
from main import validate_invoice
from models import ApiResponse
from reference import ReferenceProvider, build_reference_provider
from report import format_report_json

logger = get_logger("invoice-api")

EXCEL_CONTENT_TYPES = {
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.ms-excel",
}

START_TIME = time.time()

app = FastAPI(
    title="Pharmacy Invoice Validator API",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[os.getenv("FRONTEND_URL", "http://localhost:3000")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _envelope(
    status_code: int = 200,
    *,
    success: bool,
    data: Any = None,
    error: Optional[str] = None,
    message: Optional[str] = None,
) -> JSONResponse:
    body = ApiResponse[Any](success=success, data=data, error=error, message=message)
    return JSONResponse(status_code=status_code, content=body.to_json_dict())


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _is_debug_enabled() -> bool:
    """Return True when DEBUG mode is enabled via environment variable."""
    return os.getenv("DEBUG", "").strip().lower() in {"1", "true", "yes", "on"}


def _is_excel_upload(upload: UploadFile) -> bool:
    content_type = (upload.content_type or "").split(";", 1)[0].strip().lower()
    if content_type in EXCEL_CONTENT_TYPES:
        return True
    return Path(upload.filename or "").suffix.lower() in SUPPORTED_EXTENSIONS


def get_validation_config() -> ValidationConfig:
    return load_config()


def get_reference_provider(
    config: ValidationConfig = Depends(get_validation_config),
) -> ReferenceProvider:
    return build_reference_provider(config)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == 404 and exc.detail == "Not Found":
        return _envelope(
            404,
            success=False,
            error="Route not found",
            message=f"Cannot {request.method} {request.url.path}",
        )
    return _envelope(exc.status_code, success=False, error=str(exc.detail))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = "; ".join(
        f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg', '')}"
        for error in exc.errors()
    )
    return _envelope(400, success=False, error="Invalid request", message=problems)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "api_unhandled_error | path=%s | error_type=%s | error=%s",
        request.url.path,
        type(exc).__name__,
        exc,
        exc_info=True,
    )
    return _envelope(
        500,
        success=False,
        error="Internal server error",
        message=str(exc) if _is_debug_enabled() else "Something went wrong",
    )


@app.get("/api/health")
def health() -> JSONResponse:
    return _envelope(
        success=True,
        data={
            "status": "healthy",
            "timestamp": _utc_now_iso(),
            "uptime": round(time.time() - START_TIME, 3),
        },
        message="Invoice validator is running",
    )


@app.get("/api/health/ping")
def ping() -> dict[str, Any]:
    return {"pong": True, "timestamp": _utc_now_iso()}


@app.get("/api/invoice/sample")
def invoice_sample() -> JSONResponse:
    return _envelope(
        success=True,
        data={"message": "Sample endpoint for invoice operations"},
        message="Sample endpoint working",
    )


@app.post("/api/invoice/validate")
async def validate_invoice_endpoint(
    file: Optional[UploadFile] = File(default=None),
    threshold: Optional[float] = Query(default=None, ge=0),
    config: ValidationConfig = Depends(get_validation_config),
    provider: ReferenceProvider = Depends(get_reference_provider),
) -> JSONResponse:
    """Validate an uploaded invoice workbook and return the report envelope."""
    if file is None or not file.filename:
        return _envelope(400, success=False, error="No file uploaded")

    try:
        if not _is_excel_upload(file):
            logger.warning(
                "api_upload_rejected | filename=%s | content_type=%s | reason=not_excel",
                file.filename,
                file.content_type,
            )
            return _envelope(400, success=False, error="Only Excel files are allowed")

        data = await file.read(MAX_FILE_SIZE_BYTES + 1)
    finally:
        await file.close()

    if len(data) > MAX_FILE_SIZE_BYTES:
        return _envelope(
            413,
            success=False,
            error="File too large",
            message=f"Maximum upload size is {MAX_FILE_SIZE_BYTES // (1024 * 1024)} MB",
        )

    if threshold is not None:
        config = config.model_copy(update={"price_threshold": threshold})

    logger.info(
        "api_validate_start | filename=%s | bytes=%s | threshold=%s",
        file.filename,
        len(data),
        config.price_threshold,
    )

    try:
        report = await validate_invoice(data, config=config, provider=provider)
    except ParseError as exc:
        logger.warning("api_validate_parse_error | filename=%s | error=%s", file.filename, exc)
        return _envelope(400, success=False, error="Failed to parse Excel file", message=str(exc))

    return _envelope(
        success=True,
        data=format_report_json(report),
        message="Invoice validated successfully",
    )


if __name__ == "__main__":
    setup_logging_from_env()
    port = int(os.getenv("PORT", "3001"))
    uvicorn.run("api:app", host="0.0.0.0", port=port, reload=False)
