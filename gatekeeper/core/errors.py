"""Application-level exception types.

This module defines domain errors used across the engine, stores and the HTTP
layer, enabling consistent error handling, logging, and API responses.

A rate limit denial is not an error inside the engine (it is a ``Decision``);
``RateLimitExceededError`` only exists so the HTTP layer can turn a denial
into a 429 response through the common exception handlers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional to keep shapes consistent without forcing every
    error to fill every field.
    """

    code: str
    message: str
    hint: str
    actual_value: Any
    policy: str
    backend: str
    retry_after: int
    limit: int
    remaining: int
    reset_at: int
    request_id: str
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
    """Raised when request input validation fails."""


class AuthenticationAppError(AppError):
    """Raised when authentication/authorization fails."""


class PolicyConfigurationError(AppError):
    """Raised when a rate limit policy is constructed with invalid values.

    This is a startup-time error: policies are built when modules load,
    never per request.
    """


class UnknownPolicyError(AppError):
    """Raised when a policy name does not match any registered preset."""


class StoreUnavailableError(AppError):
    """Raised when the counter store backend cannot be reached.

    Callers decide whether to fail open or closed; this must never be
    confused with a normal denial.
    """


@dataclass
class RateLimitExceededError(AppError):
    """Raised by the HTTP layer when a request is denied by a policy.

    Attributes:
        headers: Response headers (Retry-After and X-RateLimit-*).
    """

    headers: dict[str, str] = field(default_factory=dict)
