from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from services.media.domain.errors import (
    InvalidState,
    MediaError,
    NotFound,
    ValidationError,
)

LOGGER = logging.getLogger(__name__)


def error_body(message: str, code: str) -> dict:
    return {"success": False, "message": message, "error": code}


def status_for(exc: MediaError) -> int:
    if isinstance(exc, (ValidationError, InvalidState)):
        return 400
    if isinstance(exc, NotFound):
        return 404
    return 500


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(MediaError)
    async def media_error_handler(request: Request, exc: MediaError):
        status_code = status_for(exc)
        if status_code >= 500:
            LOGGER.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=status_code, content=error_body(str(exc), exc.code)
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ):
        details = "; ".join(
            f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg')}"
            for error in exc.errors()
        )
        return JSONResponse(
            status_code=400,
            content=error_body(details or "Invalid request", ValidationError.code),
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        LOGGER.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500, content=error_body("Internal server error", "INTERNAL_ERROR")
        )
