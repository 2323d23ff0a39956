"""FastAPI error handlers for laundry-auth exceptions.

Every error leaves the API as ``{"success": false, "error", "message"}``.
Storage and unexpected failures are logged here and answered without
internal details.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from laundry_auth.core.exceptions import (
    AccountLockedError,
    AccountNotFoundError,
    AuthError,
    ConfigurationError,
    DuplicateKeyError,
    InputValidationError,
    LaundryAuthError,
    RateLimitError,
    SessionError,
    SetupAlreadyCompleteError,
    StorageConnectionError,
    StorageOperationError,
)

logger = logging.getLogger(__name__)


def _status_for(exc: LaundryAuthError) -> tuple[int, str, str]:
    """Map an exception to (status code, error code, client message)."""
    if isinstance(exc, AuthError):
        return 401, exc.error_code, exc.message
    if isinstance(exc, (AccountNotFoundError, SessionError)):
        # Internal kinds that should have been blurred by the service
        return 401, "invalid_token", "Invalid token"
    if isinstance(exc, DuplicateKeyError):
        return 400, "duplicate_key", exc.message
    if isinstance(exc, InputValidationError):
        return 400, "validation_error", exc.message
    if isinstance(exc, SetupAlreadyCompleteError):
        return 400, "setup_already_complete", exc.message
    if isinstance(exc, AccountLockedError):
        return 423, "account_locked", exc.message
    if isinstance(exc, RateLimitError):
        return 429, "rate_limit_exceeded", exc.message
    if isinstance(exc, StorageConnectionError):
        return 503, "service_unavailable", "Service temporarily unavailable"
    if isinstance(exc, ConfigurationError):
        return 500, "configuration_error", "Server misconfigured"
    return 500, "internal_error", "An unexpected error occurred. Please try again later."


async def laundry_auth_exception_handler(
    request: Request,
    exc: LaundryAuthError
) -> JSONResponse:
    """Translate a laundry-auth exception into a JSON error response."""
    status_code, error_type, message = _status_for(exc)

    if status_code >= 500:
        logger.error(
            "%s %s failed: %s", request.method, request.url.path, exc.message
        )

    content = {
        "success": False,
        "error": error_type,
        "message": message,
    }

    # Hints describe internals; only show them while debugging
    if exc.hint and request.app.debug:
        content["hint"] = exc.hint

    if isinstance(exc, InputValidationError) and exc.field:
        content["field"] = exc.field
    if isinstance(exc, AccountLockedError):
        content["lockout_minutes"] = exc.remaining_minutes
    if isinstance(exc, RateLimitError) and exc.retry_after:
        content["retry_after"] = exc.retry_after

    headers = {}
    if isinstance(exc, RateLimitError) and exc.retry_after:
        headers["Retry-After"] = str(exc.retry_after)
    if status_code == 401:
        headers["WWW-Authenticate"] = "Bearer"

    return JSONResponse(
        status_code=status_code,
        content=content,
        headers=headers if headers else None,
    )


async def request_validation_exception_handler(
    request: Request,
    exc: RequestValidationError
) -> JSONResponse:
    """Handle request schema errors with per-field details."""
    errors = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"])
        errors.append({
            "field": field,
            "message": error["msg"],
            "type": error["type"],
        })

    return JSONResponse(
        status_code=422,
        content={
            "success": False,
            "error": "validation_error",
            "message": "Request validation failed",
            "details": errors,
        },
    )


async def generic_exception_handler(
    request: Request,
    exc: Exception
) -> JSONResponse:
    """Log an unexpected exception and answer with a generic 500."""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "internal_error",
            "message": "An unexpected error occurred. Please try again later.",
        },
    )


def register_error_handlers(app: FastAPI, include_generic: bool = True) -> None:
    """Register all laundry-auth error handlers with a FastAPI app.

    Args:
        app: The FastAPI application
        include_generic: Whether to include a generic handler for all exceptions
    """
    app.add_exception_handler(LaundryAuthError, laundry_auth_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)

    if include_generic:
        app.add_exception_handler(Exception, generic_exception_handler)
