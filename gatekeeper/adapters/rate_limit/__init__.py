"""Counter store adapters.

This package provides a small abstraction layer so the service can run with
an in-memory store and move to Redis (or another shared store) without
changing the engine or the API layer.
"""

from gatekeeper.adapters.rate_limit.base import AbstractCounterStore, IncrementResult, WindowState
from gatekeeper.adapters.rate_limit.factory import create_counter_store
from gatekeeper.adapters.rate_limit.in_memory import InMemoryCounterStore
from gatekeeper.adapters.rate_limit.redis_store import RedisCounterStore

__all__ = [
    "AbstractCounterStore",
    "InMemoryCounterStore",
    "IncrementResult",
    "RedisCounterStore",
    "WindowState",
    "create_counter_store",
]
