from __future__ import annotations

import logging

from fastapi import FastAPI, HTTPException
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from recordstore.services.record_store import (
    ConstraintError,
    NotFoundError,
    RecordStoreError,
    StorageError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# First match wins: a missing link target is both a constraint and a not-found error.
_STORE_ERROR_STATUS = (
    (ConstraintError, 409, "constraint"),
    (NotFoundError, 404, "not_found"),
    (ValidationError, 422, "validation"),
    (StorageError, 503, "storage"),
)


def store_error_status(exc: RecordStoreError) -> tuple[int, str]:
    for cls, status, kind in _STORE_ERROR_STATUS:
        if isinstance(exc, cls):
            return status, kind
    return 500, "internal"


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(RecordStoreError)
    async def record_store_exception_handler(_, exc: RecordStoreError):
        status, kind = store_error_status(exc)
        if status >= 500:
            logger.error("Record store failure: %s", exc)
        return JSONResponse(
            status_code=status,
            content={
                "detail": str(exc),
                "error": {"type": kind, "status": status, "detail": str(exc)},
            },
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(_, exc: HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "detail": exc.detail,
                "error": {"type": "http", "status": exc.status_code, "detail": exc.detail},
            },
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(_, exc: RequestValidationError):
        return JSONResponse(
            status_code=422,
            content={
                "detail": "Validation error",
                "error": {"type": "validation", "issues": jsonable_encoder(exc.errors())},
            },
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(_, exc: Exception):
        logger.exception("Unhandled error: %s", exc)
        return JSONResponse(
            status_code=500,
            content={
                "detail": "Internal server error",
                "error": {"type": "internal"},
            },
        )
