"""Global exception handlers for consistent error responses.

Design:
- AppError subclasses → mapped HTTP status (400, 403, 404, 429, 500, 503)
- Unexpected Exception → generic 500 (safety net)
- All responses include request_id for tracing
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from gatekeeper.core.errors import (
    AppError,
    AuthenticationAppError,
    PolicyConfigurationError,
    RateLimitExceededError,
    StoreUnavailableError,
    UnknownPolicyError,
)
from gatekeeper.core.logging import get_request_id

logger = logging.getLogger(__name__)

# Checked in order; first isinstance match wins, default is 400.
_STATUS_BY_ERROR: tuple[tuple[type[AppError], int], ...] = (
    (RateLimitExceededError, 429),
    (AuthenticationAppError, 403),
    (UnknownPolicyError, 404),
    (StoreUnavailableError, 503),
    (PolicyConfigurationError, 500),
)


def status_code_for(exc: AppError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 400


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Handle domain application errors with consistent JSON format.

    Response body::

        {"error": {"code", "message", "request_id", "details"?}}

    Rate limit denials additionally carry Retry-After and X-RateLimit-*
    headers.
    """
    status_code = status_code_for(exc)

    log = logger.error if status_code >= 500 else logger.warning
    log(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "status_code": status_code,
            "has_details": bool(exc.details),
            "request_path": request.url.path,
            "request_id": get_request_id(),
        },
    )

    error_content = {
        "code": exc.code,
        "message": exc.message,
        "request_id": get_request_id(),
    }
    if exc.details:
        error_content["details"] = exc.details

    headers = exc.headers if isinstance(exc, RateLimitExceededError) else None
    return JSONResponse(
        status_code=status_code,
        content={"error": error_content},
        headers=headers or None,
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback handler for unexpected errors.

    Logs the failure for debugging while returning a generic message, so no
    implementation details or stack traces reach the client.
    """
    logger.error(
        "unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_path": request.url.path,
            "request_method": request.method,
            "request_id": get_request_id(),
        },
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "internal_server_error",
                "message": "An unexpected error occurred. Please try again later.",
                "request_id": get_request_id(),
            }
        },
    )


def setup_exception_handlers(app) -> None:
    """Register all exception handlers with the FastAPI app.

    Example:
        >>> from fastapi import FastAPI
        >>> app = FastAPI()
        >>> setup_exception_handlers(app)
    """
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(Exception)(general_exception_handler)
