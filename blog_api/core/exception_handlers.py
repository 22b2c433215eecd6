"""Global exception handlers for consistent error responses.

This module provides FastAPI exception handlers that intercept all errors
(domain and unexpected) and return consistent JSON responses with proper
HTTP status codes and traceability.

Design:
- AppError subclasses → appropriate HTTP status (400, 500)
- Unexpected Exception → generic 500 (safety net)
- Every body carries ``status`` and ``message``, plus ``code`` and
  ``request_id`` for tracing
"""

from __future__ import annotations

import logging
from typing import Mapping

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from blog_api.core.errors import AppError, InfrastructureAppError
from blog_api.core.logging import get_request_id

logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "Internal server error."


def error_response(
    status_code: int,
    *,
    code: str,
    message: str,
    headers: Mapping[str, str] | None = None,
) -> JSONResponse:
    """Build the service-wide JSON error response.

    Args:
        status_code: HTTP status to send.
        code: Machine-readable error code.
        message: Human-readable message safe to show clients.
        headers: Optional extra response headers.

    Returns:
        JSONResponse with body ``{status, message, code, request_id}``.
    """
    return JSONResponse(
        status_code=status_code,
        content={
            "status": status_code,
            "message": message,
            "code": code,
            "request_id": get_request_id(),
        },
        headers=dict(headers) if headers else None,
    )


def status_for(exc: AppError) -> int:
    """Map a domain error to its HTTP status (client fault unless infrastructure)."""
    if isinstance(exc, InfrastructureAppError):
        return status.HTTP_500_INTERNAL_SERVER_ERROR
    return status.HTTP_400_BAD_REQUEST


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Handle domain application errors with consistent JSON format.

    Infrastructure failures never expose their message to the client; it is
    logged instead.
    """
    status_code = status_for(exc)

    logger.warning(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "status_code": status_code,
            "has_details": bool(exc.details),
        },
    )

    message = INTERNAL_ERROR_MESSAGE if status_code >= 500 else exc.message
    return error_response(status_code, code=exc.code, message=message)


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback handler for unexpected errors (safety net).

    Logs detailed information for debugging while returning a generic message,
    so no stack traces or exception text reach the client.
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

    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        code="internal_server_error",
        message=INTERNAL_ERROR_MESSAGE,
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI app.

    Example:
        >>> from fastapi import FastAPI
        >>> app = FastAPI()
        >>> setup_exception_handlers(app)
    """
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(Exception)(general_exception_handler)
