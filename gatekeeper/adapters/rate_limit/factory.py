"""Factory for creating counter store instances."""

from __future__ import annotations

from gatekeeper.adapters.rate_limit.base import AbstractCounterStore
from gatekeeper.adapters.rate_limit.in_memory import InMemoryCounterStore
from gatekeeper.adapters.rate_limit.redis_store import RedisCounterStore
from gatekeeper.core.config import RateLimitSettings, settings
from gatekeeper.core.errors import PolicyConfigurationError


def create_counter_store(rate_limit_settings: RateLimitSettings | None = None) -> AbstractCounterStore:
    """Instantiate the counter store selected by configuration.

    Args:
        rate_limit_settings: Optional settings; defaults to global settings.

    Returns:
        AbstractCounterStore: Configured store instance.

    Raises:
        PolicyConfigurationError: If the backend name is not supported.
    """
    cfg = rate_limit_settings or settings.rate_limit
    backend = cfg.backend.lower()

    if backend == "memory":
        return InMemoryCounterStore()

    if backend == "redis":
        return RedisCounterStore.from_url(
            cfg.redis_url,
            grace_ms=cfg.stale_after_ms,
            socket_timeout=cfg.redis_socket_timeout_seconds,
        )

    raise PolicyConfigurationError(
        code="unknown_store_backend",
        message=f"Unknown rate limit backend: '{backend}'. Supported backends: memory, redis",
        details={"backend": backend},
    )
