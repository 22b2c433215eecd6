"""Application-level exception types.

This module defines domain errors used across services/adapters, enabling
consistent error handling, logging, and API responses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients."""

    hint: str
    header: str
    backend: str
    timeout_seconds: float
    error_type: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input/config validation fails."""


class KeyExtractionError(ValidationAppError):
    """Raised when a request lacks the attributes needed to build a limiter key."""


class InfrastructureAppError(AppError):
    """Raised when a backing service fails (store unreachable, timeout, bad reply)."""


class RateLimitStoreError(InfrastructureAppError):
    """Raised when the rate limit counting store cannot produce a decision."""
