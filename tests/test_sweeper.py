"""Tests for the background eviction sweeper."""

import threading
from unittest.mock import Mock

import pytest

from gatekeeper.adapters.rate_limit.in_memory import InMemoryCounterStore
from gatekeeper.services.sweeper import EvictionSweeper


def test_run_once_passes_clock_in_milliseconds() -> None:
    store = Mock()
    store.sweep.return_value = 3
    sweeper = EvictionSweeper(store, stale_after_ms=250, clock=Mock(return_value=12.5))

    assert sweeper.run_once() == 3
    store.sweep.assert_called_once_with(12_500, 250)


def test_run_once_evicts_stale_state(store: InMemoryCounterStore) -> None:
    store.try_increment("old", 0, 1, 1_000)
    store.try_increment("fresh", 59_500, 1, 1_000)
    sweeper = EvictionSweeper(store, stale_after_ms=0, clock=Mock(return_value=60.0))

    assert sweeper.run_once() == 1
    assert len(store) == 1


def test_background_thread_sweeps_until_stopped() -> None:
    swept = threading.Event()
    store = Mock()

    def _sweep(now: int, stale_after_ms: int) -> int:
        swept.set()
        return 0

    store.sweep.side_effect = _sweep
    sweeper = EvictionSweeper(store, interval_seconds=0.01)

    sweeper.start()
    try:
        assert swept.wait(timeout=2.0)
        assert sweeper.running is True
    finally:
        sweeper.stop()

    assert sweeper.running is False


def test_background_thread_survives_store_errors() -> None:
    calls = threading.Semaphore(0)
    store = Mock()

    def _sweep(now: int, stale_after_ms: int) -> int:
        calls.release()
        raise RuntimeError("backend hiccup")

    store.sweep.side_effect = _sweep
    sweeper = EvictionSweeper(store, interval_seconds=0.01)

    sweeper.start()
    try:
        assert calls.acquire(timeout=2.0)
        assert calls.acquire(timeout=2.0)
    finally:
        sweeper.stop()


def test_start_is_idempotent() -> None:
    sweeper = EvictionSweeper(Mock(), interval_seconds=10)

    sweeper.start()
    first = sweeper._thread
    sweeper.start()
    try:
        assert sweeper._thread is first
    finally:
        sweeper.stop()


@pytest.mark.parametrize(
    "kwargs",
    [
        {"interval_seconds": 0},
        {"stale_after_ms": -1},
    ],
)
def test_invalid_constructor_args(kwargs: dict) -> None:
    with pytest.raises(ValueError):
        EvictionSweeper(Mock(), **kwargs)


def test_store_provider_follows_replaced_store() -> None:
    first, second = InMemoryCounterStore(), InMemoryCounterStore()
    first.try_increment("old", 0, 1, 1_000)
    second.try_increment("old", 0, 1, 1_000)
    current = {"store": first}
    sweeper = EvictionSweeper(
        store_provider=lambda: current["store"],
        stale_after_ms=0,
        clock=Mock(return_value=60.0),
    )

    assert sweeper.run_once() == 1
    current["store"] = second
    assert sweeper.run_once() == 1
    assert len(second) == 0


def test_requires_exactly_one_store_source() -> None:
    with pytest.raises(ValueError):
        EvictionSweeper()
    with pytest.raises(ValueError):
        EvictionSweeper(Mock(), store_provider=Mock())
