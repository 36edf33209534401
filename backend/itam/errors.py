"""Typed errors and the HTTP failure envelope.

    AssetTrackerError (base)
    +-- ValidationError   400
    +-- AuthError         401
    |   +-- ForbiddenError 403
    +-- NotFoundError     404
    +-- ConflictError     409
    +-- UnexpectedError   500

Every failure leaves the API as ``{"success": false, "error": ..., "details"?: ...}``.
``details`` is only included when DEBUG is on.
"""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from itam import config
from itam.logging_config import get_logger

logger = get_logger(__name__)


class AssetTrackerError(Exception):
    code = "ERROR"
    status_code = 500

    def __init__(self, message: str, details: str | None = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(AssetTrackerError):
    code = "VALIDATION_ERROR"
    status_code = 400


class AuthError(AssetTrackerError):
    code = "AUTH_ERROR"
    status_code = 401


class ForbiddenError(AuthError):
    code = "FORBIDDEN"
    status_code = 403


class NotFoundError(AssetTrackerError):
    code = "NOT_FOUND"
    status_code = 404


class ConflictError(AssetTrackerError):
    """Uniqueness violation. ``field`` names the column that collided."""

    code = "CONFLICT"
    status_code = 409

    def __init__(self, message: str, field: str | None = None, details: str | None = None):
        super().__init__(message, details)
        self.field = field


class UnexpectedError(AssetTrackerError):
    code = "UNEXPECTED_ERROR"
    status_code = 500


def error_body(error: str, details: str | None = None, **extra) -> dict:
    body = {"success": False, "error": error}
    if details and config.DEBUG:
        body["details"] = details
    body.update(extra)
    return body


def ok(data) -> dict:
    return {"success": True, "data": data}


def setup_exception_handlers(app: FastAPI):

    @app.exception_handler(AssetTrackerError)
    async def asset_tracker_error_handler(request: Request, exc: AssetTrackerError):
        extra = {"code": exc.code}
        if isinstance(exc, ConflictError) and exc.field:
            extra["field"] = exc.field
        if exc.status_code >= 500:
            logger.error("Request failed: %s", exc.message, extra={"path": request.url.path})
        else:
            logger.warning("Request rejected: %s", exc.message, extra={"path": request.url.path, "code": exc.code})
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.message, exc.details, **extra),
            headers={"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None,
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.warning("Invalid request body", extra={"path": request.url.path})
        return JSONResponse(
            status_code=400,
            content=error_body("Invalid request", str(exc.errors())),
        )

    # Catch all unhandled exceptions
    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception", extra={"path": request.url.path})
        return JSONResponse(
            status_code=500,
            content=error_body("Internal server error", str(exc)),
        )
