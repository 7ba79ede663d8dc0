"""Rate limiting wiring for FastAPI routes.

This module turns engine ``Decision`` objects into HTTP behavior:
- Admitted: X-RateLimit-* telemetry headers on the response
- Denied: ``RateLimitExceededError`` rendered as 429 with Retry-After
- Store unavailable: fail open (admit, flag the response) or fail closed
  (503) depending on the policy

The process-wide engine is exposed through ``get_rate_limiter`` so routes can
take it as a dependency and tests can override it.
"""

from __future__ import annotations

import logging
import threading
from typing import Annotated, Callable

from fastapi import Depends, Request, Response

from gatekeeper.adapters.rate_limit.base import AbstractCounterStore
from gatekeeper.adapters.rate_limit.factory import create_counter_store
from gatekeeper.core.client_ip import get_client_ip
from gatekeeper.core.config import settings
from gatekeeper.core.errors import RateLimitExceededError, StoreUnavailableError
from gatekeeper.core.policies import FailMode, Policy
from gatekeeper.services.rate_limiter import Decision, RateLimiter
from gatekeeper.utils.key_builder import hash_identifier

logger = logging.getLogger(__name__)

DEGRADED_HEADER = "X-RateLimit-Degraded"

_limiter: RateLimiter | None = None
_limiter_config: tuple[str, str] | None = None
_limiter_lock = threading.Lock()


def get_rate_limiter() -> RateLimiter:
    """Return the process-wide rate limiter.

    The instance is cached in-module to preserve counters across requests.
    If the backend configuration changes (primarily in tests), the store is
    closed and the limiter rebuilt.
    """

    global _limiter, _limiter_config

    config = (settings.rate_limit.backend, settings.rate_limit.redis_url)
    with _limiter_lock:
        if _limiter is None or _limiter_config != config:
            if _limiter is not None:
                _limiter.store.close()
            _limiter = RateLimiter(create_counter_store(settings.rate_limit))
            _limiter_config = config
        return _limiter


def get_counter_store() -> AbstractCounterStore:
    return get_rate_limiter().store


def shutdown_rate_limiter() -> None:
    """Close the process-wide store and forget the limiter."""

    global _limiter, _limiter_config

    with _limiter_lock:
        if _limiter is not None:
            _limiter.store.close()
        _limiter = None
        _limiter_config = None


def build_rate_limit_headers(decision: Decision) -> dict[str, str]:
    headers = {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining),
        "X-RateLimit-Reset": str(decision.reset_at_seconds),
    }
    if decision.retry_after_seconds is not None:
        headers["Retry-After"] = str(decision.retry_after_seconds)
    return headers


def _handle_store_failure(
    exc: StoreUnavailableError,
    policy: Policy,
    identifier_hash: str,
    response: Response | None,
) -> None:
    if policy.fail_mode is FailMode.CLOSED:
        logger.error(
            "rate_limit.store_unavailable",
            extra={
                "key_prefix": policy.key_prefix,
                "identifier_hash": identifier_hash,
                "fail_mode": policy.fail_mode.value,
                "error_code": exc.code,
            },
        )
        raise exc

    logger.warning(
        "rate_limit.store_unavailable",
        extra={
            "key_prefix": policy.key_prefix,
            "identifier_hash": identifier_hash,
            "fail_mode": policy.fail_mode.value,
            "error_code": exc.code,
        },
    )
    if response is not None:
        response.headers[DEGRADED_HEADER] = "fail-open"


def enforce(
    limiter: RateLimiter,
    identifier: str,
    policy: Policy,
    response: Response | None = None,
) -> Decision | None:
    """Check ``identifier`` against ``policy`` and apply the HTTP outcome.

    Args:
        limiter: Engine to consult.
        identifier: Caller identity.
        policy: Policy to enforce.
        response: Response whose headers receive rate limit telemetry.

    Returns:
        The admitting Decision, or None when rate limiting is disabled or the
        store failed open.

    Raises:
        RateLimitExceededError: When the request is denied (HTTP 429).
        StoreUnavailableError: When the store is down and the policy fails
            closed (HTTP 503).
    """

    if not settings.rate_limit.enabled:
        return None

    identifier_hash = hash_identifier(identifier)
    try:
        decision = limiter.check(identifier, policy)
    except StoreUnavailableError as exc:
        _handle_store_failure(exc, policy, identifier_hash, response)
        return None

    headers = build_rate_limit_headers(decision) if settings.rate_limit.include_headers else {}

    if decision.success:
        logger.info(
            "rate_limit.allowed",
            extra={
                "key_prefix": policy.key_prefix,
                "identifier_hash": identifier_hash,
                "limit": decision.limit,
                "remaining": decision.remaining,
            },
        )
        if response is not None:
            response.headers.update(headers)
        return decision

    retry_after = decision.retry_after_seconds or 0
    logger.warning(
        "rate_limit.exceeded",
        extra={
            "key_prefix": policy.key_prefix,
            "identifier_hash": identifier_hash,
            "limit": decision.limit,
            "window_ms": policy.window_ms,
            "retry_after_s": retry_after,
        },
    )
    raise RateLimitExceededError(
        code="rate_limit_exceeded",
        message=policy.message,
        details={
            "retry_after": retry_after,
            "limit": decision.limit,
            "remaining": decision.remaining,
            "reset_at": decision.reset_at_seconds,
        },
        headers=headers,
    )


def rate_limit(
    policy: Policy,
    identifier_func: Callable[[Request], str] = get_client_ip,
) -> Callable[..., Decision | None]:
    """Build a route dependency enforcing ``policy``.

    Usage:
        @router.post("/login", dependencies=[Depends(rate_limit(AUTH_RATE_LIMIT))])

    Args:
        policy: Policy to enforce.
        identifier_func: Derives the caller identifier from the request.
    """

    def _enforce_policy(
        request: Request,
        response: Response,
        limiter: Annotated[RateLimiter, Depends(get_rate_limiter)],
    ) -> Decision | None:
        return enforce(limiter, identifier_func(request), policy, response)

    return _enforce_policy
