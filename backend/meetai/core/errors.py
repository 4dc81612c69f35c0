# backend/meetai/core/errors.py
from __future__ import annotations

from typing import Any, Optional

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_401_UNAUTHORIZED,
    HTTP_402_PAYMENT_REQUIRED,
    HTTP_404_NOT_FOUND,
    HTTP_409_CONFLICT,
    HTTP_422_UNPROCESSABLE_ENTITY,
    HTTP_500_INTERNAL_SERVER_ERROR,
)

from meetai.logging_utils import get_logger

log = get_logger(__name__)


class ApiError(BaseModel):
    error: str
    message: str
    details: Optional[Any] = None


class AppError(Exception):
    """Base for errors that map onto a JSON error response."""

    status_code: int = HTTP_500_INTERNAL_SERVER_ERROR
    error: str = "InternalServerError"

    def __init__(self, message: str, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(AppError):
    status_code = HTTP_400_BAD_REQUEST
    error = "ValidationError"


class AuthError(AppError):
    status_code = HTTP_401_UNAUTHORIZED
    error = "AuthError"


class QuotaError(AppError):
    """Upstream billing / quota exhaustion."""

    status_code = HTTP_402_PAYMENT_REQUIRED
    error = "QuotaError"


class NotFoundError(AppError):
    status_code = HTTP_404_NOT_FOUND
    error = "NotFoundError"


class ConflictError(AppError):
    status_code = HTTP_409_CONFLICT
    error = "ConflictError"


class UpstreamError(AppError):
    status_code = HTTP_500_INTERNAL_SERVER_ERROR
    error = "UpstreamError"


class RecoverableSpeechError(RuntimeError):
    """Speech engine failure the voice controller recovers from locally."""


def error_response(status_code: int, error: str, message: str, details: Any = None) -> JSONResponse:
    payload = ApiError(error=error, message=message, details=details).model_dump()
    return JSONResponse(status_code=status_code, content=payload)


def app_error_response(exc: AppError) -> JSONResponse:
    return error_response(exc.status_code, exc.error, exc.message, exc.details)


async def app_error_handler(request: Request, exc: AppError):
    log.warning(
        "AppError",
        extra={"path": request.url.path, "status": exc.status_code, "error": exc.error},
    )
    return app_error_response(exc)


async def http_exception_handler(request: Request, exc: HTTPException):
    # Normalize all HTTPExceptions into {error, message, details}
    detail = exc.detail
    if isinstance(detail, dict) and "error" in detail and "message" in detail:
        payload = detail
    else:
        payload = {
            "error": "HTTPError",
            "message": str(detail),
            "details": None,
        }
    log.warning("HTTPException", extra={"path": request.url.path, "status": exc.status_code, "payload": payload})
    return JSONResponse(status_code=exc.status_code, content=payload, headers=getattr(exc, "headers", None))


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    log.warning("RequestValidationError", extra={"path": request.url.path, "details": exc.errors()})
    return error_response(
        HTTP_422_UNPROCESSABLE_ENTITY,
        "ValidationError",
        "Request validation failed",
        details=jsonable_errors(exc),
    )


async def generic_exception_handler(request: Request, exc: Exception):
    log.error("Unhandled exception", extra={"path": request.url.path}, exc_info=exc)
    return error_response(
        HTTP_500_INTERNAL_SERVER_ERROR,
        "InternalServerError",
        "An unexpected error occurred",
    )


def jsonable_errors(exc: RequestValidationError) -> list[dict[str, Any]]:
    # ctx may carry exception instances which JSONResponse cannot encode
    return [{k: v for k, v in err.items() if k != "ctx"} for err in exc.errors()]
