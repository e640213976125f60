"""
Civitas — API Error Mapping
============================
Translates ``CivitasError`` into HTTP responses by ``ErrorKind``.

Failure envelope:
    {"error": {"code": ..., "kind": ..., "message": ..., <details>}}

Request validation failures raised by FastAPI are reported through the
same envelope as ``ValidationError`` (400).
"""

from __future__ import annotations

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from civitas.core.exceptions import CivitasError, ErrorKind, ValidationError
from civitas.core.logging import get_logger

logger = get_logger(__name__)

STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.UNAUTHENTICATED: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorKind.ALREADY_ARCHIVED: status.HTTP_409_CONFLICT,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.ARCHIVED_ACCESS_DENIED: status.HTTP_410_GONE,
    ErrorKind.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def error_body(exc: CivitasError) -> dict:
    message = exc.message
    if exc.kind is ErrorKind.INTERNAL:
        message = "Internal server error."
    return {
        "error": {
            "code": exc.error_code,
            "kind": exc.kind.value,
            "message": message,
            **exc.details,
        }
    }


async def civitas_error_handler(request: Request, exc: CivitasError) -> JSONResponse:
    status_code = STATUS_BY_KIND[exc.kind]
    log = logger.error if status_code >= 500 else logger.info
    log(
        "api.error",
        path=request.url.path,
        status_code=status_code,
        error_code=exc.error_code,
        message=exc.message,
    )
    return JSONResponse(status_code=status_code, content=error_body(exc))


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = [
        {
            "loc": ".".join(str(part) for part in error.get("loc", ())),
            "message": error.get("msg", ""),
        }
        for error in exc.errors()
    ]
    return await civitas_error_handler(
        request,
        ValidationError("Invalid request.", details={"errors": errors}),
    )


def register_exception_handlers(application: FastAPI) -> None:
    application.add_exception_handler(CivitasError, civitas_error_handler)
    application.add_exception_handler(
        RequestValidationError, request_validation_handler
    )
