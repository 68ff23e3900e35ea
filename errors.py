"""
Application error hierarchy and FastAPI exception handlers.

AppError is the base for all typed errors. The global exception handler
converts AppError subclasses to a ``{code, message}`` JSON body with the
class-level HTTP status.

Repositories raise NotFoundError / AlreadyExistsError / InvalidFieldsError
or wrap anything else from the store in StorageError (tagged with the
operation name). Services let them propagate; only this module decides
the HTTP status.

Non-AppError exceptions bubble up as 500s (with Sentry reporting in production).
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from shared.logging import get_logger

log = get_logger(__name__)

INTERNAL_MESSAGE = "internal server error"


class AppError(Exception):
    """Base application error. All typed errors inherit from this."""

    status_code: int = 500
    error_code: str = "internal_error"

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        details: Optional[Any] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.field = field
        self.details = details

    def to_dict(self) -> dict:
        payload: dict = {"code": self.error_code, "message": self.message}
        if self.field is not None:
            payload["field"] = self.field
        if self.details is not None:
            payload["details"] = self.details
        return payload


class ValidationError(AppError):
    status_code = 400
    error_code = "bad_request"


class InvalidFieldsError(ValidationError):
    error_code = "invalid_fields"


class InvalidValuesError(ValidationError):
    error_code = "invalid_values"


class AuthenticationError(AppError):
    status_code = 401
    error_code = "unauthorized"


class ForbiddenError(AppError):
    status_code = 403
    error_code = "forbidden"


class NotFoundError(AppError):
    status_code = 404
    error_code = "not_found"


class RequestTimeoutError(AppError):
    status_code = 408
    error_code = "request_timeout"


class ConflictError(AppError):
    status_code = 409
    error_code = "conflict"


class AlreadyExistsError(ConflictError):
    error_code = "already_exists"


class AlreadyLoggedInError(ConflictError):
    error_code = "already_logged_in"


class RateLimitError(AppError):
    status_code = 429
    error_code = "too_many_requests"


class VerificationError(AppError):
    """Registration flow state, not a transport failure: served with 200."""

    status_code = 200
    error_code = "verification_failed"


class InvalidCodeError(VerificationError):
    error_code = "invalid_code"


class ZeroAttemptsError(VerificationError):
    error_code = "zero_attempts"


class CodeExpiredError(VerificationError):
    error_code = "code_expired"


class InternalError(AppError):
    """Never exposes its message to the client."""

    def to_dict(self) -> dict:
        return {"code": self.error_code, "message": INTERNAL_MESSAGE}


class StorageError(InternalError):
    """A store failure that is not one of the mapped sentinels."""

    def __init__(self, op: str, cause: Optional[BaseException] = None) -> None:
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"{op}{detail}")
        self.op = op


class EmailDeliveryError(InternalError):
    error_code = "email_delivery_failed"


def _validation_details(exc: RequestValidationError) -> dict[str, str]:
    details: dict[str, str] = {}
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        details[".".join(loc) or "request"] = err.get("msg", "invalid value")
    return details


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the FastAPI app."""

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        if exc.status_code >= 500:
            log.error(
                "request_failed",
                path=request.url.path,
                error=exc.message,
                error_type=type(exc).__name__,
            )
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content={
                "code": "validation_error",
                "message": "request validation failed",
                "details": _validation_details(exc),
            },
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        # Sentry integration: if sentry_sdk is initialized it will auto-capture
        # unhandled exceptions before this handler fires.
        log.error(
            "unhandled_exception",
            path=request.url.path,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        return JSONResponse(
            status_code=500,
            content={"code": "internal_error", "message": INTERNAL_MESSAGE},
        )
