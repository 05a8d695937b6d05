"""
Error handling and sanitization

- Fulfillment errors -> JSON with their code and HTTP status
- Unexpected exceptions -> logged with traceback, generic 500 to the client
"""
import logging
import traceback
from typing import Union

from fastapi import FastAPI, Request, HTTPException
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from fulfillment.core.config import settings
from fulfillment.core.exceptions import FulfillmentError

logger = logging.getLogger(__name__)

# Patterns that indicate internal/sensitive error information
SENSITIVE_PATTERNS = [
    "password",
    "secret",
    "token",
    "key",
    "credential",
    "sqlalchemy",
    "asyncpg",
    "postgresql",
    "sqlite",
    "traceback",
    "file \"",
    "line ",
]


def is_sensitive_error(message: str) -> bool:
    """Check if error message contains sensitive information."""
    message_lower = message.lower()
    return any(pattern in message_lower for pattern in SENSITIVE_PATTERNS)


def sanitize_error_message(error: Union[str, Exception]) -> str:
    """
    Sanitize an error message for safe client exposure.

    Args:
        error: The error string or exception

    Returns:
        Sanitized error message safe for client
    """
    message = error if isinstance(error, str) else str(error)

    if settings.DEBUG:
        return message

    if is_sensitive_error(message):
        return "An internal error occurred. Please try again later."

    if len(message) > 200:
        return message[:200] + "..."

    return message


async def fulfillment_error_handler(request: Request, exc: FulfillmentError) -> JSONResponse:
    """Translate the fulfillment exception hierarchy into HTTP responses."""
    if exc.status_code >= 500:
        logger.error(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
    else:
        logger.info(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")

    # Client errors carry our own messages; only server-side failures are sanitized
    message = exc.message if exc.status_code < 500 else sanitize_error_message(exc.message)
    content = {
        "error": exc.code,
        "message": message,
    }
    if settings.DEBUG and exc.details:
        content["details"] = exc.details

    headers = {"Retry-After": "1"} if exc.status_code == 503 else None
    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)


class ErrorSanitizationMiddleware(BaseHTTPMiddleware):
    """
    Catch unhandled exceptions and sanitize error responses.

    - In production: Returns generic error, logs full details
    - In development: Returns full error for debugging
    """

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except HTTPException:
            raise
        except Exception as e:
            error_id = f"{request.client.host if request.client else 'unknown'}-{id(e)}"
            logger.error(
                f"Unhandled exception [{error_id}]: {type(e).__name__}: {str(e)}\n"
                f"Path: {request.url.path}\n"
                f"Method: {request.method}\n"
                f"Traceback:\n{traceback.format_exc()}"
            )

            if settings.DEBUG:
                return JSONResponse(
                    status_code=500,
                    content={
                        "error": "internal_error",
                        "message": str(e),
                        "type": type(e).__name__,
                        "error_id": error_id,
                    }
                )
            return JSONResponse(
                status_code=500,
                content={
                    "error": "internal_error",
                    "message": "An unexpected error occurred. Please try again later.",
                    "error_id": error_id,
                }
            )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(FulfillmentError, fulfillment_error_handler)
    app.add_middleware(ErrorSanitizationMiddleware)
