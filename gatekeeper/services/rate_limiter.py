"""Fixed-window rate limiter engine.

The engine turns (identifier, policy) into an admit/deny ``Decision``. It
holds no state between calls: all counting lives in the injected counter
store, whose ``try_increment`` is the single atomic unit per check.

Fixed windows allow up to ``2 * max_requests`` admissions across a window
boundary (a burst at the end of one window followed by one at the start of
the next). Callers needing stricter pacing should pick a stricter
max_requests/window_ms ratio or swap in a sliding algorithm behind the same
``check``/``reset`` contract.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import Callable

from gatekeeper.adapters.rate_limit.base import AbstractCounterStore
from gatekeeper.core.policies import Policy
from gatekeeper.utils.key_builder import build_key

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Decision:
    """Result of a rate limit check.

    Attributes:
        success: Whether the request is admitted.
        limit: Max requests per window for the policy.
        remaining: Remaining requests in the current window (0 when denied).
        reset_at: UNIX epoch milliseconds when the current window ends.
        retry_after_seconds: Seconds until a new admission is possible,
            set only when denied.
    """

    success: bool
    limit: int
    remaining: int
    reset_at: int
    retry_after_seconds: int | None = None

    @property
    def reset_at_seconds(self) -> int:
        return math.ceil(self.reset_at / 1000)


def _retry_after_seconds(reset_at: int, now: int) -> int:
    return max(0, math.ceil((reset_at - now) / 1000))


class RateLimiter:
    """Admission engine over a counter store.

    Args:
        store: Counter store owning all window state.
        clock: Time source returning UNIX time in seconds.
    """

    def __init__(
        self,
        store: AbstractCounterStore,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._clock = clock

    @property
    def store(self) -> AbstractCounterStore:
        return self._store

    def now_ms(self) -> int:
        return int(self._clock() * 1000)

    def check(self, identifier: str, policy: Policy, now: int | None = None) -> Decision:
        """Consume one request from ``identifier``'s budget under ``policy``.

        Args:
            identifier: Caller identity.
            policy: Policy to enforce.
            now: UNIX epoch milliseconds; defaults to the engine clock.

        Returns:
            Decision describing admission, remaining quota and reset time.

        Raises:
            StoreUnavailableError: If the store backend cannot be reached.
        """

        if now is None:
            now = self.now_ms()
        key = build_key(identifier, policy.key_prefix)

        result = self._store.try_increment(key, now, policy.max_requests, policy.window_ms)
        reset_at = result.state.window_start + policy.window_ms

        if result.admitted:
            remaining = max(0, policy.max_requests - result.state.count)
            logger.debug(
                "rate_limiter.admitted",
                extra={"key_prefix": policy.key_prefix, "remaining": remaining},
            )
            return Decision(
                success=True,
                limit=policy.max_requests,
                remaining=remaining,
                reset_at=reset_at,
            )

        retry_after = _retry_after_seconds(reset_at, now)
        logger.debug(
            "rate_limiter.denied",
            extra={"key_prefix": policy.key_prefix, "retry_after_s": retry_after},
        )
        return Decision(
            success=False,
            limit=policy.max_requests,
            remaining=0,
            reset_at=reset_at,
            retry_after_seconds=retry_after,
        )

    def peek(self, identifier: str, policy: Policy, now: int | None = None) -> Decision:
        """Report quota for ``identifier`` without consuming any of it.

        ``success`` tells whether the next check would be admitted.
        """

        if now is None:
            now = self.now_ms()
        key = build_key(identifier, policy.key_prefix)

        state = self._store.get_or_init(key, now, policy.window_ms)
        reset_at = state.window_start + policy.window_ms
        if now >= reset_at:
            return Decision(
                success=True,
                limit=policy.max_requests,
                remaining=policy.max_requests,
                reset_at=now + policy.window_ms,
            )

        remaining = max(0, policy.max_requests - state.count)
        if remaining:
            return Decision(
                success=True,
                limit=policy.max_requests,
                remaining=remaining,
                reset_at=reset_at,
            )
        return Decision(
            success=False,
            limit=policy.max_requests,
            remaining=0,
            reset_at=reset_at,
            retry_after_seconds=_retry_after_seconds(reset_at, now),
        )

    def reset(self, identifier: str, key_prefix: str) -> None:
        """Clear all counting state for ``identifier`` under ``key_prefix``.

        Applies regardless of window state; the next check starts fresh.
        """

        self._store.delete(build_key(identifier, key_prefix))
        logger.info("rate_limiter.reset", extra={"key_prefix": key_prefix})
