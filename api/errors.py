"""Global exception handlers for FastAPI."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError
from starlette.responses import JSONResponse

from api.base import error_response, ErrorCodes
from auth.exceptions import PermissionDeniedError
from core.exceptions import (
    DuplicateCurpError,
    InvoiceNotDeletableError,
    PaymentNotAllowedError,
    PrescriptionExistsError,
    SchedulingConflictError,
)

logger = logging.getLogger(__name__)


def _error(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=error_response(code, message).model_dump(mode="json"),
    )


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the app."""

    @app.exception_handler(SchedulingConflictError)
    async def conflict_handler(request: Request, exc: SchedulingConflictError):
        return _error(409, ErrorCodes.APPOINTMENT_CONFLICT, str(exc))

    @app.exception_handler(DuplicateCurpError)
    async def duplicate_handler(request: Request, exc: DuplicateCurpError):
        return _error(409, ErrorCodes.ALREADY_EXISTS, str(exc))

    @app.exception_handler(PrescriptionExistsError)
    async def prescription_exists_handler(request: Request, exc: PrescriptionExistsError):
        return _error(409, ErrorCodes.ALREADY_EXISTS, str(exc))

    @app.exception_handler(InvoiceNotDeletableError)
    async def not_deletable_handler(request: Request, exc: InvoiceNotDeletableError):
        return _error(400, ErrorCodes.INVOICE_NOT_DELETABLE, str(exc))

    @app.exception_handler(PaymentNotAllowedError)
    async def payment_handler(request: Request, exc: PaymentNotAllowedError):
        return _error(400, ErrorCodes.PAYMENT_NOT_ALLOWED, str(exc))

    @app.exception_handler(PermissionDeniedError)
    async def permission_handler(request: Request, exc: PermissionDeniedError):
        return _error(403, ErrorCodes.FORBIDDEN, str(exc))

    @app.exception_handler(ValidationError)
    async def model_validation_handler(request: Request, exc: ValidationError):
        return _error(422, ErrorCodes.VALIDATION_ERROR, str(exc.errors(include_url=False)))

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        message = str(exc)
        if "not found" in message.lower():
            return _error(404, ErrorCodes.NOT_FOUND, message)
        return _error(400, ErrorCodes.INVALID_REQUEST, message)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return _error(422, ErrorCodes.VALIDATION_ERROR, str(exc.errors()))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception")
        return _error(500, ErrorCodes.INTERNAL_ERROR, "An internal error occurred")
