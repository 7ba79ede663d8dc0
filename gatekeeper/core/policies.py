"""Rate limit policies and the named presets consumed by routes.

A policy is the triple (max_requests, window_ms, key_prefix) defining one
independently counted limit. Each preset carries its own prefix so two
presets applied to the same identifier never share counting state.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from gatekeeper.core.errors import PolicyConfigurationError, UnknownPolicyError

DEFAULT_DENIAL_MESSAGE = "Too many requests. Please try again later."


class FailMode(str, Enum):
    """Behavior when the counter store itself is unavailable."""

    OPEN = "open"
    CLOSED = "closed"


def _require_positive_int(name: str, value: object) -> None:
    # bool is an int subclass; True must not pass as max_requests=1
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise PolicyConfigurationError(
            code="invalid_policy",
            message=f"{name} must be a positive integer",
            details={"actual_value": value},
        )


@dataclass(frozen=True)
class Policy:
    """Immutable rate limit policy.

    Attributes:
        max_requests: Requests admitted per window.
        window_ms: Window length in milliseconds.
        key_prefix: Namespace isolating this policy's counters.
        message: Human-readable text returned on denial.
        fail_mode: Whether to admit (open) or deny (closed) when the
            counter store is unavailable.

    Raises:
        PolicyConfigurationError: If any value is out of range.
    """

    max_requests: int
    window_ms: int
    key_prefix: str
    message: str = DEFAULT_DENIAL_MESSAGE
    fail_mode: FailMode = FailMode.OPEN

    def __post_init__(self) -> None:
        _require_positive_int("max_requests", self.max_requests)
        _require_positive_int("window_ms", self.window_ms)
        if not isinstance(self.key_prefix, str) or not self.key_prefix.strip():
            raise PolicyConfigurationError(
                code="invalid_policy",
                message="key_prefix must be a non-empty string",
                details={"actual_value": self.key_prefix},
            )
        if not isinstance(self.fail_mode, FailMode):
            raise PolicyConfigurationError(
                code="invalid_policy",
                message="fail_mode must be 'open' or 'closed'",
                details={"actual_value": self.fail_mode},
            )

    @property
    def window_seconds(self) -> float:
        return self.window_ms / 1000


# General API traffic: generous limit, short window.
API_RATE_LIMIT = Policy(
    max_requests=100,
    window_ms=60 * 1000,
    key_prefix="api",
    message="API rate limit exceeded. Please slow down your requests.",
)

# Authentication attempts: small limit, longer window.
AUTH_RATE_LIMIT = Policy(
    max_requests=5,
    window_ms=15 * 60 * 1000,
    key_prefix="auth",
    message="Too many authentication attempts. Please try again in 15 minutes.",
)

# Password reset: unmetered access during a store outage is worse than denying.
PASSWORD_RESET_RATE_LIMIT = Policy(
    max_requests=3,
    window_ms=60 * 60 * 1000,
    key_prefix="password-reset",
    message="Too many password reset requests. Please try again in an hour.",
    fail_mode=FailMode.CLOSED,
)

AI_RATE_LIMIT = Policy(
    max_requests=10,
    window_ms=60 * 1000,
    key_prefix="ai",
    message="AI generation rate limit exceeded. Please try again in a minute.",
)

RSVP_RATE_LIMIT = Policy(
    max_requests=10,
    window_ms=60 * 1000,
    key_prefix="rsvp",
    message="Too many RSVP submissions. Please try again later.",
)

BILLING_RATE_LIMIT = Policy(
    max_requests=10,
    window_ms=60 * 1000,
    key_prefix="billing",
    message="Too many billing requests. Please try again in a minute.",
    fail_mode=FailMode.CLOSED,
)

POLICY_PRESETS: dict[str, Policy] = {
    "api": API_RATE_LIMIT,
    "auth": AUTH_RATE_LIMIT,
    "password_reset": PASSWORD_RESET_RATE_LIMIT,
    "ai": AI_RATE_LIMIT,
    "rsvp": RSVP_RATE_LIMIT,
    "billing": BILLING_RATE_LIMIT,
}


def get_policy(name: str) -> Policy:
    """Resolve a preset by name.

    Raises:
        UnknownPolicyError: If no preset is registered under ``name``.
    """

    policy = POLICY_PRESETS.get(name)
    if policy is None:
        raise UnknownPolicyError(
            code="unknown_policy",
            message=f"Unknown rate limit policy: '{name}'",
            details={"policy": name, "hint": f"Known policies: {', '.join(sorted(POLICY_PRESETS))}"},
        )
    return policy
