"""Pytest configuration and fixtures shared across all test modules.

Environment variables are set before any import that might load settings,
so every test runs against the in-memory backend with known admin keys.
"""

import os

os.environ["APP_ENV"] = "testing"
os.environ.setdefault("RATE_LIMIT_BACKEND", "memory")
os.environ.setdefault("RATE_LIMIT_SWEEP_ENABLED", "false")
os.environ.setdefault("APP_ADMIN_API_KEY_REQUIRED", "true")
os.environ.setdefault("APP_ADMIN_API_KEYS", "test-admin-key-123,test-admin-key-456")

from unittest.mock import Mock

import pytest

from gatekeeper.adapters.rate_limit.in_memory import InMemoryCounterStore
from gatekeeper.services.rate_limiter import RateLimiter


@pytest.fixture
def clock() -> Mock:
    """Deterministic clock returning UNIX seconds; set ``return_value`` to move time."""
    return Mock(return_value=1_000.0)


@pytest.fixture
def store() -> InMemoryCounterStore:
    return InMemoryCounterStore()


@pytest.fixture
def limiter(store: InMemoryCounterStore, clock: Mock) -> RateLimiter:
    return RateLimiter(store, clock=clock)
