"""Global exception handlers for consistent error responses.

Design:
- RateLimitExceededError → 429, optionally with Retry-After / X-RateLimit-*
- ConfigurationAppError → 500 (server misconfiguration)
- Other AppError subclasses → 400
- Unexpected Exception → generic 500 (safety net)
- All responses include request_id for tracing
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.errors import AppError, ConfigurationAppError, RateLimitExceededError
from app.core.logging import get_request_id

logger = logging.getLogger(__name__)


def _rate_limit_headers(exc: RateLimitExceededError) -> dict[str, str]:
    details = exc.details or {}
    headers: dict[str, str] = {}
    if "retry_after" in details:
        headers["Retry-After"] = str(details["retry_after"])
    if "limit" in details:
        headers["X-RateLimit-Limit"] = str(details["limit"])
    if "remaining" in details:
        headers["X-RateLimit-Remaining"] = str(details["remaining"])
    if "reset_at" in details:
        headers["X-RateLimit-Reset"] = str(details["reset_at"])
    return headers


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render domain errors as ``{"error": {code, message, request_id, details}}``.

    Args:
        request: FastAPI request object.
        exc: AppError instance (or subclass).

    Returns:
        JSONResponse with the status code mapped from the error type.
    """
    status_code = 400
    headers: dict[str, str] | None = None
    if isinstance(exc, RateLimitExceededError):
        status_code = 429
        config = getattr(request.app.state, "settings", None) or settings
        if config.app.rate_limit_include_headers:
            headers = _rate_limit_headers(exc) or None
    elif isinstance(exc, ConfigurationAppError):
        status_code = 500

    logger.log(
        logging.ERROR if status_code >= 500 else logging.INFO,
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "status_code": status_code,
            "has_details": bool(exc.details),
            "request_path": request.url.path,
        },
    )

    error_content = {
        "code": exc.code,
        "message": exc.message,
        "request_id": get_request_id(),
    }
    if exc.details:
        error_content["details"] = exc.details

    return JSONResponse(
        status_code=status_code,
        content={"error": error_content},
        headers=headers,
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback handler for unexpected errors.

    Logs the failure and returns a generic message; no stack traces or
    exception text reach the client.
    """
    logger.error(
        "unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_path": request.url.path,
            "request_method": request.method,
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


def setup_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with a FastAPI app.

    Example:
        >>> from fastapi import FastAPI
        >>> app = FastAPI()
        >>> setup_exception_handlers(app)
    """
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(Exception)(general_exception_handler)
