"""Redis-backed fixed-window counter store.

Each key is a Redis hash ``{count, window_start, window_ms}``. Window
transitions and increments run inside Lua scripts, so the read-check-increment
is atomic across every process sharing the Redis instance. Keys carry a native
``PEXPIRE`` of window length plus grace, which makes ``sweep`` a no-op.

Every ``redis.RedisError`` (connection refused, timeout, script error) is
converted into ``StoreUnavailableError`` so callers can apply their
fail-open / fail-closed policy.
"""

from __future__ import annotations

import logging
from typing import Any

import redis

from gatekeeper.adapters.rate_limit.base import (
    AbstractCounterStore,
    IncrementResult,
    WindowState,
)
from gatekeeper.core.errors import StoreUnavailableError
from gatekeeper.utils.key_builder import KEY_NAMESPACE

logger = logging.getLogger(__name__)


# KEYS[1]=key ARGV: now, max_requests, window_ms, grace_ms
# Returns {admitted, count, window_start, window_ms}
TRY_INCREMENT_SCRIPT = """
local key = KEYS[1]
local now = tonumber(ARGV[1])
local max_requests = tonumber(ARGV[2])
local window_ms = tonumber(ARGV[3])
local grace_ms = tonumber(ARGV[4])
local state = redis.call('HMGET', key, 'count', 'window_start', 'window_ms')
local count = tonumber(state[1])
local window_start = tonumber(state[2])
local stored_window_ms = tonumber(state[3]) or window_ms
if count == nil or window_start == nil or now >= window_start + window_ms then
    redis.call('HSET', key, 'count', 1, 'window_start', now, 'window_ms', window_ms)
    redis.call('PEXPIRE', key, window_ms + grace_ms)
    return {1, 1, now, window_ms}
end
if stored_window_ms ~= window_ms then
    redis.call('HSET', key, 'window_ms', window_ms)
    redis.call('PEXPIRE', key, window_start + window_ms + grace_ms - now)
end
if count < max_requests then
    count = redis.call('HINCRBY', key, 'count', 1)
    return {1, count, window_start, window_ms}
end
return {0, count, window_start, window_ms}
"""

# KEYS[1]=key ARGV: now, window_ms, grace_ms
GET_OR_INIT_SCRIPT = """
local key = KEYS[1]
local now = tonumber(ARGV[1])
local window_ms = tonumber(ARGV[2])
local grace_ms = tonumber(ARGV[3])
local state = redis.call('HMGET', key, 'count', 'window_start', 'window_ms')
local count = tonumber(state[1])
local window_start = tonumber(state[2])
if count == nil or window_start == nil then
    redis.call('HSET', key, 'count', 0, 'window_start', now, 'window_ms', window_ms)
    redis.call('PEXPIRE', key, window_ms + grace_ms)
    return {0, now, window_ms}
end
return {count, window_start, tonumber(state[3]) or window_ms}
"""


class RedisCounterStore(AbstractCounterStore):
    """Counter store shared across processes through Redis.

    Args:
        client: Synchronous redis-py client.
        grace_ms: Extra lifetime given to keys after their window ends.
    """

    def __init__(self, client: redis.Redis, *, grace_ms: int = 60_000) -> None:
        if grace_ms < 0:
            raise ValueError("grace_ms must be >= 0")
        self._client = client
        self._grace_ms = grace_ms
        self._try_increment = client.register_script(TRY_INCREMENT_SCRIPT)
        self._get_or_init = client.register_script(GET_OR_INIT_SCRIPT)

    @classmethod
    def from_url(cls, url: str, *, grace_ms: int = 60_000, socket_timeout: float | None = None) -> "RedisCounterStore":
        client = redis.Redis.from_url(
            url,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        return cls(client, grace_ms=grace_ms)

    def _unavailable(self, operation: str, exc: redis.RedisError) -> StoreUnavailableError:
        logger.error(
            "counter_store.unavailable",
            extra={
                "backend": "redis",
                "operation": operation,
                "error_type": type(exc).__name__,
            },
        )
        return StoreUnavailableError(
            code="rate_limit_store_unavailable",
            message="Rate limit store is unavailable",
            details={"backend": "redis", "context": {"operation": operation}},
        )

    def get_or_init(self, key: str, now: int, window_ms: int) -> WindowState:
        try:
            count, window_start, stored_window_ms = self._get_or_init(
                keys=[key],
                args=[now, window_ms, self._grace_ms],
            )
        except redis.RedisError as exc:
            raise self._unavailable("get_or_init", exc) from exc
        return WindowState(
            count=int(count),
            window_start=int(window_start),
            window_ms=int(stored_window_ms),
        )

    def try_increment(
        self,
        key: str,
        now: int,
        max_requests: int,
        window_ms: int,
    ) -> IncrementResult:
        try:
            admitted, count, window_start, stored_window_ms = self._try_increment(
                keys=[key],
                args=[now, max_requests, window_ms, self._grace_ms],
            )
        except redis.RedisError as exc:
            raise self._unavailable("try_increment", exc) from exc
        state = WindowState(
            count=int(count),
            window_start=int(window_start),
            window_ms=int(stored_window_ms),
        )
        return IncrementResult(admitted=bool(int(admitted)), state=state)

    def delete(self, key: str) -> None:
        try:
            self._client.delete(key)
        except redis.RedisError as exc:
            raise self._unavailable("delete", exc) from exc

    def sweep(self, now: int, stale_after_ms: int) -> int:
        # Keys expire natively via PEXPIRE.
        return 0

    def clear(self) -> None:
        """Delete every rate limit key in the Redis database."""

        try:
            batch: list[Any] = []
            for key in self._client.scan_iter(match=f"{KEY_NAMESPACE}:*", count=500):
                batch.append(key)
                if len(batch) >= 500:
                    self._client.delete(*batch)
                    batch = []
            if batch:
                self._client.delete(*batch)
        except redis.RedisError as exc:
            raise self._unavailable("clear", exc) from exc

    def close(self) -> None:
        self._client.close()

    def stats(self) -> dict[str, Any]:
        return {"backend": "redis", "grace_ms": self._grace_ms}
