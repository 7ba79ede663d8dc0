"""Tests running the Redis Lua scripts against an in-process fake server.

``fakeredis`` with its Lua extra executes ``register_script`` sources, so the
window transitions, denials and key expiry are exercised for real.
"""

from unittest.mock import Mock

import fakeredis
import pytest

from gatekeeper.adapters.rate_limit.base import WindowState
from gatekeeper.adapters.rate_limit.redis_store import RedisCounterStore
from gatekeeper.core.policies import Policy
from gatekeeper.services.rate_limiter import RateLimiter
from gatekeeper.utils.key_builder import build_key

GRACE_MS = 5_000


@pytest.fixture
def redis_client() -> fakeredis.FakeRedis:
    return fakeredis.FakeRedis(server=fakeredis.FakeServer())


@pytest.fixture
def redis_store(redis_client: fakeredis.FakeRedis) -> RedisCounterStore:
    return RedisCounterStore(redis_client, grace_ms=GRACE_MS)


@pytest.fixture
def redis_limiter(redis_store: RedisCounterStore, clock: Mock) -> RateLimiter:
    return RateLimiter(redis_store, clock=clock)


def test_admits_until_limit_then_denies(redis_limiter: RateLimiter) -> None:
    policy = Policy(max_requests=2, window_ms=60_000, key_prefix="api")

    decisions = [redis_limiter.check("203.0.113.7", policy) for _ in range(3)]

    assert [(d.success, d.remaining, d.retry_after_seconds) for d in decisions] == [
        (True, 1, None),
        (True, 0, None),
        (False, 0, 60),
    ]


def test_denial_does_not_increment(redis_store: RedisCounterStore, redis_client: fakeredis.FakeRedis) -> None:
    redis_store.try_increment("k", 1_000, 1, 60_000)

    result = redis_store.try_increment("k", 2_000, 1, 60_000)

    assert result.admitted is False
    assert result.state == WindowState(count=1, window_start=1_000, window_ms=60_000)
    assert int(redis_client.hget("k", "count")) == 1


def test_window_expiry_readmits(redis_limiter: RateLimiter, clock: Mock) -> None:
    policy = Policy(max_requests=1, window_ms=100, key_prefix="burst")

    assert redis_limiter.check("user-1", policy).success is True
    assert redis_limiter.check("user-1", policy).success is False

    clock.return_value = 1_001.0
    decision = redis_limiter.check("user-1", policy)

    assert decision.success is True
    assert decision.reset_at == 1_001_000 + 100


def test_new_window_opens_exactly_at_window_end(redis_store: RedisCounterStore) -> None:
    redis_store.try_increment("k", 1_000, 1, 10_000)

    assert redis_store.try_increment("k", 10_999, 1, 10_000).admitted is False
    result = redis_store.try_increment("k", 11_000, 1, 10_000)

    assert result.admitted is True
    assert result.state == WindowState(count=1, window_start=11_000, window_ms=10_000)


def test_reset_readmits_mid_window(redis_limiter: RateLimiter) -> None:
    policy = Policy(max_requests=1, window_ms=60_000, key_prefix="api")

    assert redis_limiter.check("user-1", policy).success is True
    assert redis_limiter.check("user-1", policy).success is False

    redis_limiter.reset("user-1", "api")

    assert redis_limiter.check("user-1", policy).success is True


def test_new_window_sets_ttl_to_window_plus_grace(
    redis_limiter: RateLimiter, redis_client: fakeredis.FakeRedis
) -> None:
    policy = Policy(max_requests=5, window_ms=60_000, key_prefix="api")

    redis_limiter.check("user-1", policy)

    ttl = redis_client.pttl(build_key("user-1", "api"))
    assert 60_000 < ttl <= 60_000 + GRACE_MS


def test_shortened_window_updates_stored_length_and_ttl(
    redis_store: RedisCounterStore, redis_client: fakeredis.FakeRedis
) -> None:
    redis_store.try_increment("k", 0, 5, 10_000)

    result = redis_store.try_increment("k", 1_000, 5, 2_000)

    assert result.state == WindowState(count=2, window_start=0, window_ms=2_000)
    assert int(redis_client.hget("k", "window_ms")) == 2_000
    assert 0 < redis_client.pttl("k") <= 2_000 + GRACE_MS - 1_000


def test_get_or_init_creates_empty_window_without_consuming(
    redis_store: RedisCounterStore, redis_client: fakeredis.FakeRedis
) -> None:
    first = redis_store.get_or_init("k", 7_000, 1_000)
    second = redis_store.get_or_init("k", 7_500, 1_000)

    assert first == WindowState(count=0, window_start=7_000, window_ms=1_000)
    assert second == first
    assert 0 < redis_client.pttl("k") <= 1_000 + GRACE_MS


def test_peek_reports_consumed_quota(redis_limiter: RateLimiter) -> None:
    policy = Policy(max_requests=3, window_ms=60_000, key_prefix="rsvp")
    redis_limiter.check("user-1", policy)

    decision = redis_limiter.peek("user-1", policy)

    assert decision.success is True
    assert decision.remaining == 2


def test_clear_removes_only_namespaced_keys(
    redis_limiter: RateLimiter, redis_store: RedisCounterStore, redis_client: fakeredis.FakeRedis
) -> None:
    redis_client.set("unrelated", "1")
    redis_limiter.check("user-1", Policy(max_requests=1, window_ms=60_000, key_prefix="api"))

    redis_store.clear()

    assert redis_client.keys("rate_limit:*") == []
    assert redis_client.get("unrelated") == b"1"
